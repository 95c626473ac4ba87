"""Reconcile license pool counters and asset structure with the underlying rows."""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import func, update
from sqlalchemy.orm import Session, aliased

from .. import models, schemas
from .locks import POOL_LOCKS

LOGGER = logging.getLogger(__name__)


class DataConsistencyService:
    """Surface drift between stored counters and what the rows say."""

    @staticmethod
    def _build_counter_map(rows: Iterable[tuple[int | None, int]]) -> dict[int, int]:
        return {
            int(key): int(count)
            for key, count in rows
            if key is not None and count is not None
        }

    @classmethod
    def _compare_counters(
        cls, recorded: dict[int, int], actual: dict[int, int]
    ) -> list[schemas.PoolCounterMismatch]:
        mismatches: list[schemas.PoolCounterMismatch] = []
        for key in sorted({*recorded.keys(), *actual.keys()}):
            recorded_value = recorded.get(key, 0)
            actual_value = actual.get(key, 0)
            if recorded_value != actual_value:
                mismatches.append(
                    schemas.PoolCounterMismatch(
                        license_id=key, recorded=recorded_value, actual=actual_value
                    )
                )
        return mismatches

    @classmethod
    def seat_counts(cls, db: Session) -> dict[int, int]:
        return cls._build_counter_map(
            db.query(
                models.SoftwareInstallation.license_id,
                func.count(models.SoftwareInstallation.id),
            )
            .filter(models.SoftwareInstallation.seat_held.is_(True))
            .group_by(models.SoftwareInstallation.license_id)
            .all()
        )

    @classmethod
    def ledger_report(cls, db: Session) -> schemas.LedgerConsistencyReport:
        recorded = cls._build_counter_map(
            db.query(models.LicensePool.id, models.LicensePool.allocated_count).all()
        )
        actual = cls.seat_counts(db)

        oversubscribed = [
            pool_id
            for (pool_id,) in db.query(models.LicensePool.id)
            .filter(models.LicensePool.allocated_count > models.LicensePool.total_licenses)
            .all()
        ]

        assigned_components = [
            str(asset_id)
            for (asset_id,) in db.query(models.Asset.id)
            .filter(
                models.Asset.asset_type == models.AssetType.COMPONENT,
                models.Asset.assigned_to.isnot(None),
            )
            .all()
        ]

        parent = aliased(models.Asset)
        invalid_parent_links = [
            str(asset_id)
            for (asset_id,) in db.query(models.Asset.id)
            .outerjoin(parent, models.Asset.parent_asset_id == parent.id)
            .filter(
                models.Asset.parent_asset_id.isnot(None),
                models.Asset.deleted_at.is_(None),
                (parent.id.is_(None))
                | (parent.deleted_at.isnot(None))
                | (parent.asset_type != models.AssetType.STANDALONE),
            )
            .all()
        ]

        return schemas.LedgerConsistencyReport(
            counter_mismatches=cls._compare_counters(recorded, actual),
            assigned_components=assigned_components,
            invalid_parent_links=invalid_parent_links,
            oversubscribed_pools=oversubscribed,
        )

    @classmethod
    def repair_counters(cls, db: Session) -> schemas.LedgerConsistencyReport:
        """Rewrite drifted pool counters from the seat-holding installations."""

        report = cls.ledger_report(db)
        pool_ids = [mismatch.license_id for mismatch in report.counter_mismatches]
        if not pool_ids:
            return report
        with POOL_LOCKS.hold_many(pool_ids):
            try:
                actual = cls.seat_counts(db)
                for pool_id in pool_ids:
                    db.execute(
                        update(models.LicensePool)
                        .where(models.LicensePool.id == pool_id)
                        .values(allocated_count=actual.get(pool_id, 0))
                        .execution_options(synchronize_session=False)
                    )
                db.commit()
            except Exception:
                db.rollback()
                raise
        LOGGER.warning("Repaired allocation counters of license pools %s", pool_ids)
        repaired = cls.ledger_report(db)
        repaired.repaired = True
        return repaired
