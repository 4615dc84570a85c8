"""
Reaper module.
Contains the stale running job reaper.
"""
