"""Automated ride booking: conflict detection, driver assignment and a
messaging-driven booking conversation."""
