"""
Live state core package.

This package contains the pieces shared by the FarmWatch server and the
watch agent:
- record schemas for the watched collections (fire zones, security points, team members)
- change events and snapshot patching
- the live state synchronizer (subscriptions + reconnecting change feed)
- the notification dispatcher (capped, persisted alert log)
"""
