"""Job status values and the allowed forward transitions."""

from __future__ import annotations


class JobStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    COMPLETED_NO_ITEMS = "completed_no_items"
    AGENT_SKIPPED = "agent_skipped"

    FINAL = (COMPLETED, FAILED, COMPLETED_NO_ITEMS, AGENT_SKIPPED)

    @classmethod
    def agent_skipped(cls, reason: str | None) -> str:
        reason = (reason or "").strip()
        return f"{cls.AGENT_SKIPPED} - {reason}" if reason else cls.AGENT_SKIPPED

    @classmethod
    def base(cls, status: str) -> str:
        """Strip the reason suffix of compound statuses."""

        return status.split(" - ", 1)[0].strip()

    @classmethod
    def is_final(cls, status: str) -> bool:
        return cls.base(status) in cls.FINAL

    @classmethod
    def can_transition(cls, current: str, target: str) -> bool:
        current_base = cls.base(current)
        target_base = cls.base(target)
        if current_base in cls.FINAL:
            return False
        if current_base == cls.PROCESSING:
            return target_base in cls.FINAL
        if current_base == cls.PENDING:
            return target_base != cls.PENDING
        return False
