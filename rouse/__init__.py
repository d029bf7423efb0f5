"""
Rouse - alarm clock engine package

This is the root package for Rouse, containing shared utilities and the
alarm scheduling/firing engine.

Core modules:
- audio: Audio control and playback (volume, tone rendering, sample playback)
- sound_library: Alarm sound catalog and file resolution
- datetime_utils: Local wall-clock helpers shared by the engine
- alarms: Alarm store, occurrence calculation, wake scheduling and firing
"""

__version__ = "0.4.2"
