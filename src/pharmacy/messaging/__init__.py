"""Messaging registry: outbox, notifier adapter and operator alert sink.

Provides singleton access. Notifications themselves are stored through the
Notification aggregate, so the outbox holds no state of its own. Uses the
fake notifier by default; a real adapter can be selected through the
NOTIFIER_ADAPTER environment variable.
"""

import os

_outbox_instance = None
_notifier_instance = None
_operator_sink_instance = None


def get_outbox():
    """Return the publishing facade over the Notification store."""
    global _outbox_instance
    if _outbox_instance is None:
        from pharmacy.messaging.outbox import Outbox

        _outbox_instance = Outbox()
    return _outbox_instance


def get_notifier():
    """Return the configured notifier adapter (singleton)."""
    global _notifier_instance
    if _notifier_instance is None:
        adapter = os.environ.get("NOTIFIER_ADAPTER", "fake")
        if adapter == "fake":
            from pharmacy.messaging.fake_notifier import FakeNotifier

            _notifier_instance = FakeNotifier()
        else:
            raise ValueError(f"Unknown notifier adapter: {adapter}")
    return _notifier_instance


def get_operator_sink():
    """Return the operator alert sink bound to the shared outbox."""
    global _operator_sink_instance
    if _operator_sink_instance is None:
        from pharmacy.messaging.alerts import OperatorAlertSink

        _operator_sink_instance = OperatorAlertSink(
            get_outbox(),
            recipient_id=os.environ.get("OPERATOR_RECIPIENT_ID", "operations"),
        )
    return _operator_sink_instance


def flush_outbox() -> dict:
    """Deliver stored notifications through the configured notifier."""
    return get_outbox().flush()


def reset_messaging():
    """Reset all messaging singletons (useful for testing)."""
    global _outbox_instance, _notifier_instance, _operator_sink_instance
    _outbox_instance = None
    _notifier_instance = None
    _operator_sink_instance = None
