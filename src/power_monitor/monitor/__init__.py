"""
Polling side of Power Monitor: the portal client, the reading store and the
scheduler that ties them to the notification system.
"""
