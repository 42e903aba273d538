"""Collaborator sinks: audit event log and observer notifications."""

from pumpguard.sinks.event_log import EventLogSink, HttpEventLogSink, InMemoryEventLog, LoggingEventLog
from pumpguard.sinks.mqtt import MqttNotifier
from pumpguard.sinks.notifier import LoggingNotifier, Notifier, RecordingNotifier

__all__ = [
    "EventLogSink",
    "HttpEventLogSink",
    "InMemoryEventLog",
    "LoggingEventLog",
    "LoggingNotifier",
    "MqttNotifier",
    "Notifier",
    "RecordingNotifier",
]
