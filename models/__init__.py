"""Data models."""
from models.enums import Severity, AlertStatus, TransitionKind, Category
from models.alerts import Finding, Rule, RuleOutcome, Alert, Transition, HistoryEntry, CycleResult
from models.signals import (
    SignalSnapshot, LogRecord, LogSnapshot, ErrorCountSnapshot, ApiLatencySnapshot,
    CancellationSnapshot, RevenueSnapshot, DatabaseSnapshot, CycleSignals,
)
