"""Sync layer.

Merge policy, statistics, retry policy, reachability and the scheduler
that ties them to the local stores and the remote gateway.
"""
