"""Audit package: append-only JSONL journal of privileged actions.

Public surface
--------------
- :class:`AuditJournal`       - append, read back and verify journal entries.
- :exc:`AuditWriteError`      - raised by the strict append path.
- :class:`AuditVerifyResult`  - result of :meth:`AuditJournal.verify`.
- :func:`actor_payload`       - serialise the acting principal.

Usage example
-------------
::

    journal = AuditJournal(config.audit.absolute_path)
    journal.record(
        "user.role_changed",
        {"user_id": 7, "old_role": "MEMBER", "new_role": "OFFICER"},
        actor=actor_payload(principal),
    )
"""

from dkp_server.audit.journal import (
    AuditJournal,
    AuditVerifyResult,
    AuditWriteError,
    actor_payload,
)

__all__ = [
    "AuditJournal",
    "AuditVerifyResult",
    "AuditWriteError",
    "actor_payload",
]
