"""
Energy hub package for the smart-home dashboard backend.

Merges per-appliance power logs from the home's realtime store into a cached
dashboard snapshot, and mirrors the device registry so that on/off toggles
reach every connected observer.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-001)

TODO:
- None
"""
