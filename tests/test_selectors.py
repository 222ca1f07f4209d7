from sqlmaint.core.models import DatabaseInfo, Operation, RecoveryModel
from sqlmaint.core.selectors import (
    AndSelector,
    NameSelector,
    NotSelector,
    OrSelector,
    SystemDatabaseSelector,
    UserDatabaseSelector,
    skip_reason,
)


def _db(id: int = 5, name: str = "sales", **kwargs) -> DatabaseInfo:
    return DatabaseInfo(id=id, name=name, recovery_model=RecoveryModel.FULL, **kwargs)


def test_name_selector_matches():
    assert NameSelector(["sales"]).matches(_db(name="sales")) is True


def test_name_selector_ignores_case():
    assert NameSelector(["sales"]).matches(_db(name="Sales")) is True
    assert NameSelector(["SALES"]).matches(_db(name="sales")) is True
    assert NameSelector(["sale"]).matches(_db(name="Sales")) is False


def test_system_and_user_selectors_split_on_id_4():
    assert SystemDatabaseSelector().matches(_db(id=4, name="msdb")) is True
    assert SystemDatabaseSelector().matches(_db(id=5)) is False
    assert UserDatabaseSelector().matches(_db(id=5)) is True
    assert UserDatabaseSelector().matches(_db(id=1, name="master")) is False


def test_composite_selectors():
    db = _db(id=7, name="sales")
    name_sel = NameSelector(["sales"])

    assert AndSelector([name_sel, UserDatabaseSelector()]).matches(db) is True
    assert OrSelector([NameSelector(["hr"]), SystemDatabaseSelector()]).matches(db) is False
    assert NotSelector(name_sel).matches(db) is False


def test_skip_reason_offline_database_skips_everything():
    db = _db(is_online=False)

    for operation in Operation:
        assert skip_reason(db, operation) == "database is not online"


def test_skip_reason_tempdb_is_never_maintained():
    db = _db(id=2, name="tempdb")

    assert skip_reason(db, Operation.INDEX) is not None
    assert skip_reason(db, Operation.BACKUP) is not None


def test_skip_reason_read_only_blocks_index_and_statistics_only():
    db = _db(is_read_only=True)

    assert skip_reason(db, Operation.INDEX) == "database is read-only"
    assert skip_reason(db, Operation.STATISTICS) == "database is read-only"
    assert skip_reason(db, Operation.CHECKDB) is None
    assert skip_reason(db, Operation.BACKUP) is None


def test_skip_reason_secondary_replica_blocks_everything_but_backup():
    db = _db(is_local_primary=False, availability_group="ag1")

    assert skip_reason(db, Operation.INDEX) == "database is a secondary replica"
    assert skip_reason(db, Operation.CHECKDB) == "database is a secondary replica"
    assert skip_reason(db, Operation.BACKUP) is None


def test_skip_reason_none_for_regular_database():
    assert skip_reason(_db(), Operation.INDEX) is None
