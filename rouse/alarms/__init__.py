"""
Alarm scheduling and firing engine

- models: alarm records, weekday tags and the typed wake payload
- occurrence: pure next-occurrence calculation and countdown text
- store: canonical alarm list with JSON persistence
- platform: collaborator protocols and the in-process asyncio wake platform
- wake_scheduler: reconciles wake requests against the alarm list
- firing: ring / stop / snooze state machine
- tone: looping alarm tone and sound preview
- service: lifecycle API, the single writer for the alarm list
- alarm_commands, mqtt: MQTT command and state surface
- home_assistant: actionable phone notifications through Home Assistant
"""

from __future__ import annotations

__all__ = [
    "alarm_commands",
    "config",
    "firing",
    "home_assistant",
    "models",
    "mqtt",
    "occurrence",
    "platform",
    "service",
    "store",
    "tone",
    "wake_scheduler",
]
