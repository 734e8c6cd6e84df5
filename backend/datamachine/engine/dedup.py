"""Processed item tracking for flow steps."""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models.processed_item import ProcessedItem

logger = logging.getLogger("datamachine.engine.dedup")


class ProcessedItemsTracker:
    """Per (flow step, source type) record of handled item identifiers."""

    def is_item_processed(self, flow_step_id: str, source_type: str, item_identifier: str) -> bool:
        query = ProcessedItem.query.filter_by(
            flow_step_id=flow_step_id,
            source_type=source_type,
            item_identifier=str(item_identifier),
        )
        return db.session.query(query.exists()).scalar()

    def mark_item_processed(
        self,
        flow_step_id: str,
        source_type: str,
        item_identifier: str,
        *,
        job_id: int | None = None,
        flow_id: int | None = None,
    ) -> bool:
        """Insert the record; return ``False`` when another run already claimed it."""

        record = ProcessedItem(
            flow_step_id=flow_step_id,
            flow_id=flow_id if flow_id is not None else _flow_id_from_step(flow_step_id),
            source_type=source_type,
            item_identifier=str(item_identifier),
            job_id=job_id,
        )
        db.session.add(record)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.debug("Item %s:%s already claimed for %s", source_type, item_identifier, flow_step_id)
            return False
        return True

    def delete_for_flow_step(self, flow_step_id: str) -> int:
        return self._delete(ProcessedItem.query.filter_by(flow_step_id=flow_step_id))

    def delete_for_flow(self, flow_id: int) -> int:
        return self._delete(ProcessedItem.query.filter_by(flow_id=flow_id))

    def delete_for_job(self, job_id: int) -> int:
        return self._delete(ProcessedItem.query.filter_by(job_id=job_id))

    @staticmethod
    def _delete(query) -> int:
        count = query.delete(synchronize_session=False)
        db.session.commit()
        return count


def _flow_id_from_step(flow_step_id: str) -> int | None:
    _, _, suffix = flow_step_id.rpartition("_")
    return int(suffix) if suffix.isdigit() else None
