from __future__ import annotations

import pytest

from backend.windpark import models
from backend.windpark.database import session_scope

from conftest import TENANT_ID


def _fund_named(db_session, name: str):
    return db_session.query(models.OperatorFund).filter(models.OperatorFund.name == name).first()


def test_session_scope_commits_beside_request_session(db_session, seed_park):
    with session_scope(db_session.get_bind()) as scoped:
        scoped.add(models.OperatorFund(tenant_id=TENANT_ID, name="Betreiber Ost", legal_form="GmbH"))

    assert _fund_named(db_session, "Betreiber Ost") is not None


def test_session_scope_rollback_keeps_caller_transaction(db_session, seed_park):
    with pytest.raises(RuntimeError):
        with session_scope(db_session.get_bind()) as scoped:
            scoped.add(
                models.OperatorFund(tenant_id=TENANT_ID, name="Betreiber West", legal_form="GmbH")
            )
            scoped.flush()
            raise RuntimeError("fund register unavailable")

    assert _fund_named(db_session, "Betreiber West") is None
    assert _fund_named(db_session, "Betreiber Nordfeld 1") is not None
    assert db_session.get(models.Park, seed_park["park_id"]) is not None
