"""Security tests for record rules.

End-to-end scenarios: a user must never see, change or delete a record the
rules do not grant, and bulk queries must agree with per-record decisions.
"""

import threading

import pytest
from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, select

from recordrules.core.context import identity_scope
from recordrules.domain.entities import EntityRecord, UserIdentity
from recordrules.domain.services import RecordRuleEngine

metadata = MetaData()
invoices = Table(
    "invoices",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", Integer),
    Column("team_id", Integer),
    Column("state", String),
)

INVOICE_ROWS = [
    {"id": 1, "user_id": 1, "team_id": 10, "state": "open"},
    {"id": 2, "user_id": 2, "team_id": 10, "state": "open"},
    {"id": 3, "user_id": 1, "team_id": 20, "state": "paid"},
    {"id": 4, "user_id": 3, "team_id": 30, "state": "open"},
]

documents = Table(
    "documents",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("ref", String),
)

DOCUMENT_ROWS = [
    {"id": 1, "ref": "A_1"},
    {"id": 2, "ref": "AB1"},
    {"id": 3, "ref": "open"},
    {"id": 4, "ref": "Open report"},
    {"id": 5, "ref": "50% off"},
    {"id": 6, "ref": None},
]


@pytest.fixture(scope="module")
def db():
    engine = create_engine("sqlite://")
    metadata.create_all(engine)
    with engine.begin() as conn:
        conn.execute(invoices.insert(), INVOICE_ROWS)
        conn.execute(documents.insert(), DOCUMENT_ROWS)
    yield engine
    engine.dispose()


def fetch_ids(db, query):
    with db.connect() as conn:
        return sorted(row.id for row in conn.execute(query))


def invoice(row) -> EntityRecord:
    return EntityRecord("invoice", dict(row))


class TestRecordIsolation:
    """Test that rules isolate records between identities."""

    def test_user_can_only_see_own_records(self, engine, alice, bob, make_record):
        engine.define_rule(
            "invoice",
            {"name": "Own invoices", "domain": [["user_id", "=", "{user.id}"]], "groups": ["salesperson"]},
        )
        first = make_record(id=1, user_id=1)
        second = make_record(id=2, user_id=2)

        assert engine.can_access(first, "read", alice) is True
        assert engine.can_access(second, "read", alice) is False
        assert engine.can_access(first, "read", bob) is False
        assert engine.can_access(second, "read", bob) is True

    def test_manager_can_see_team_records(self, engine, make_record):
        engine.define_rule(
            "invoice",
            {"name": "Team invoices", "domain": [["team_id", "in", "{user.team_ids}"]], "groups": ["manager"]},
        )
        manager = UserIdentity(user_id=3, user_groups={"manager"}, attributes={"team_ids": [1, 2, 3]})

        assert engine.can_access(make_record(team_id=2), "read", manager) is True
        assert engine.can_access(make_record(team_id=5), "read", manager) is False

    def test_public_records_accessible_with_global_rule(self, engine, make_record):
        engine.define_rule(
            "document", {"name": "Public documents", "domain": [["is_public", "=", True]], "is_global": True}
        )
        user = UserIdentity(user_id=1)

        assert engine.can_access(make_record("document", is_public=True), "read", user) is True
        assert engine.can_access(make_record("document", is_public=False), "read", user) is False

    def test_global_and_group_rules_are_combined(self, engine, alice, make_record):
        """Both partitions must grant when both hold rules."""
        engine.define_rule("invoice", {"name": "Open only", "domain": [["state", "=", "open"]], "is_global": True})
        engine.define_rule(
            "invoice",
            {"name": "Own invoices", "domain": [["user_id", "=", "{user.id}"]], "groups": ["salesperson"]},
        )

        assert engine.can_read(make_record(user_id=1, state="open"), alice) is True
        assert engine.can_read(make_record(user_id=1, state="paid"), alice) is False
        assert engine.can_read(make_record(user_id=2, state="open"), alice) is False

    def test_inactive_rule_grants_nothing(self, strict_engine, alice, make_record):
        strict_engine.define_rule("invoice", {"name": "All", "groups": ["salesperson"], "is_active": False})
        assert strict_engine.can_read(make_record(user_id=1), alice) is False


class TestPermissionFlags:
    """Test that each operation is governed by its own flag."""

    def test_read_permission_does_not_grant_write(self, strict_engine, make_record):
        strict_engine.define_rule(
            "document", {"name": "Read only", "groups": ["viewer"], "perm_read": True, "perm_write": False}
        )
        viewer = UserIdentity(user_id=1, user_groups={"viewer"})
        doc = make_record("document", id=1)

        assert strict_engine.can_access(doc, "read", viewer) is True
        assert strict_engine.can_access(doc, "write", viewer) is False

    def test_operation_without_rules_uses_default_policy(self, engine, make_record):
        engine.define_rule("document", {"name": "Read only", "groups": ["viewer"]})
        viewer = UserIdentity(user_id=1, user_groups={"viewer"})

        assert engine.can_access(make_record("document", id=1), "write", viewer) is True

    def test_create_permission_checked_separately(self, strict_engine):
        strict_engine.define_rule(
            "document", {"name": "Creators", "groups": ["creator"], "perm_read": True, "perm_create": True}
        )
        strict_engine.define_rule(
            "document", {"name": "Viewers", "groups": ["viewer"], "perm_read": True, "perm_create": False}
        )
        creator = UserIdentity(user_id=1, user_groups={"creator"})
        viewer = UserIdentity(user_id=2, user_groups={"viewer"})

        assert strict_engine.can_create("document", creator) is True
        assert strict_engine.can_create("document", viewer) is False


class TestGroups:
    """Test group scoping."""

    def test_rule_only_applies_to_specified_groups(self, engine, make_record):
        engine.define_rule("setting", {"name": "Admins see settings", "groups": ["admin"]})
        group_admin = UserIdentity(user_id=1, user_groups={"admin"})
        user = UserIdentity(user_id=2, user_groups={"user"})

        assert engine.can_access(make_record("setting", id=1), "read", group_admin) is True
        assert engine.can_access(make_record("setting", id=1), "read", user) is False

    def test_empty_groups_with_global_applies_to_all(self, engine, make_record):
        engine.define_rule("announcement", {"name": "Everyone", "is_global": True})
        anyone = UserIdentity(user_id=5, user_groups={"random"})

        assert engine.can_access(make_record("announcement", id=1), "read", anyone) is True

    def test_rule_without_groups_applies_to_nobody(self, engine, alice, make_record):
        engine.define_rule("invoice", {"name": "Inert"})
        assert engine.can_read(make_record(user_id=1), alice) is False


class TestSuperuser:
    """Test the superuser short-circuit."""

    def test_superuser_bypasses_all_rules(self, engine, admin, make_record):
        engine.define_rule("secret", {"name": "Nobody", "domain": [["id", "=", -1]], "is_global": True})
        assert engine.can_access(make_record("secret", id=1), "read", admin) is True
        assert engine.can_access(make_record("secret", id=1), "delete", admin) is True

    @pytest.mark.parametrize(
        "identity",
        [
            UserIdentity(user_id=1, superuser=True),
            UserIdentity(user_id=2, roles={"superuser"}),
            UserIdentity(user_id=3, roles={"admin"}),
            UserIdentity(user_id=4, attributes={"is_admin": True}),
        ],
    )
    def test_superuser_check_uses_multiple_methods(self, engine, identity, make_record):
        engine.define_rule("secret", {"name": "Nobody", "domain": [["id", "=", -1]], "is_global": True})
        assert engine.can_access(make_record("secret", id=1), "read", identity) is True

    def test_superuser_decisions_are_not_cached(self, engine, admin, make_record):
        engine.can_read(make_record(user_id=1), admin)
        assert engine.cache.size() == 0


class TestDecisionCache:
    """Test cache isolation and staleness."""

    def test_cache_key_includes_tenant_id(self, engine, make_record):
        engine.define_rule(
            "invoice",
            {"name": "Tenant invoices", "domain": [["tenant_id", "=", "{user.tenant_id}"]], "groups": ["sales"]},
        )
        acme_user = UserIdentity(user_id=1, user_groups={"sales"}, attributes={"tenant_id": "acme"})
        globex_user = UserIdentity(user_id=1, user_groups=set(), attributes={"tenant_id": "globex"})
        acme_invoice = make_record(tenant_id="acme")

        assert engine.can_read(acme_invoice, acme_user) is True
        assert engine.can_read(acme_invoice, globex_user) is False
        assert engine.cache.size() == 2

    def test_cache_cleared_when_rules_change(self, strict_engine, make_record):
        user = UserIdentity(user_id=1, user_groups={"user"})
        doc = make_record("document", id=1)

        assert strict_engine.can_access(doc, "read", user) is False

        strict_engine.define_rule("document", {"name": "Users read", "groups": ["user"]})
        assert strict_engine.can_access(doc, "read", user) is False

        strict_engine.clear_cache()
        assert strict_engine.can_access(doc, "read", user) is True


class TestNoIdentity:
    """Test behavior without an acting identity."""

    def test_no_user_returns_no_access(self, engine, make_record):
        engine.define_rule("invoice", {"name": "Everyone", "is_global": True})
        assert engine.can_access(make_record(id=1), "read") is False

    def test_no_user_denied_even_without_rules(self, engine, make_record):
        assert engine.can_access(make_record("unruled", id=1), "read") is False

    def test_query_returns_nothing_without_user(self, db, engine):
        engine.define_rule("invoice", {"name": "Everyone", "is_global": True})
        query = engine.apply_rules(select(invoices), "invoice")
        assert fetch_ids(db, query) == []


class TestDefaultPolicy:
    """Test ungoverned entities."""

    def test_default_deny_blocks_when_no_rules(self, strict_engine, alice, make_record):
        assert strict_engine.can_access(make_record("new_entity", id=1), "read", alice) is False

    def test_default_allow_permits_when_no_rules(self, engine, alice, make_record):
        assert engine.can_access(make_record("new_entity", id=1), "read", alice) is True

    def test_default_policy_applies_to_queries(self, db, strict_engine, alice):
        assert fetch_ids(db, strict_engine.apply_rules(select(invoices), "invoice", identity=alice)) == []


class TestBypass:
    """Test the rule bypass scope."""

    def test_without_rules_bypasses_security(self, strict_engine, make_record):
        strict_engine.define_rule("secret", {"name": "Nobody", "domain": [["id", "=", -1]], "is_global": True})
        user = UserIdentity(user_id=1)
        secret = make_record("secret", id=1)

        assert strict_engine.can_access(secret, "read", user) is False
        assert strict_engine.without_rules(lambda: strict_engine.can_access(secret, "read", user)) is True
        assert strict_engine.can_access(secret, "read", user) is False

    def test_without_rules_passes_arguments(self, engine):
        assert engine.without_rules(lambda a, b=0: a + b, 1, b=2) == 3

    def test_without_rules_restores_state_on_error(self, engine):
        def fail():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            engine.without_rules(fail)
        assert engine.bypassed is False

    def test_nested_bypass(self, engine):
        with engine.bypass():
            engine.without_rules(lambda: None)
            assert engine.bypassed is True
        assert engine.bypassed is False

    def test_bypass_grants_without_identity(self, db, strict_engine, make_record):
        with strict_engine.bypass():
            assert strict_engine.can_access(make_record(id=1), "read") is True
            assert fetch_ids(db, strict_engine.apply_rules(select(invoices), "invoice")) == [1, 2, 3, 4]

    def test_bypass_is_per_engine(self, settings, make_record):
        first = RecordRuleEngine(settings=settings, default_deny=True)
        second = RecordRuleEngine(settings=settings, default_deny=True)
        user = UserIdentity(user_id=1)

        with first.bypass():
            assert first.can_read(make_record(id=1), user) is True
            assert second.can_read(make_record(id=1), user) is False

    def test_bypass_does_not_leak_across_threads(self, strict_engine, make_record):
        user = UserIdentity(user_id=1)
        seen = []

        with strict_engine.bypass():
            thread = threading.Thread(target=lambda: seen.append(strict_engine.can_read(make_record(id=1), user)))
            thread.start()
            thread.join()

        assert seen == [False]


class TestPluginRules:
    """Test plugin-owned rules."""

    def test_delete_plugin_rules_removes_only_plugin_rules(self, engine):
        engine.define_rule("invoice", {"name": "A", "groups": ["sales"]}, plugin_id="test-plugin")
        engine.define_rule("invoice", {"name": "B", "groups": ["sales"]}, plugin_id="test-plugin")
        engine.define_rule("invoice", {"name": "C", "groups": ["sales"]}, plugin_id="other-plugin")
        engine.define_rule("invoice", {"name": "D", "groups": ["sales"]})

        assert engine.delete_plugin_rules("test-plugin") == 2
        assert engine.store.count() == 2


class TestQueryRewriting:
    """Test that query filtering agrees with per-record decisions."""

    def test_own_records_query(self, db, engine, alice):
        engine.define_rule(
            "invoice",
            {"name": "Own invoices", "domain": [["user_id", "=", "{user.id}"]], "groups": ["salesperson"]},
        )
        query = engine.apply_read_rules(select(invoices), "invoice", alice)
        assert fetch_ids(db, query) == [1, 3]

    def test_team_query(self, db, engine, alice):
        engine.define_rule(
            "invoice",
            {"name": "Team", "domain": [["team_id", "in", "{user.team_ids}"]], "groups": ["salesperson"]},
        )
        assert fetch_ids(db, engine.apply_read_rules(select(invoices), "invoice", alice)) == [1, 2, 3]

    def test_query_uses_current_identity(self, db, engine, alice):
        engine.define_rule(
            "invoice",
            {"name": "Own invoices", "domain": [["user_id", "=", "{user.id}"]], "groups": ["salesperson"]},
        )
        with identity_scope(alice):
            assert fetch_ids(db, engine.apply_rules(select(invoices), "invoice")) == [1, 3]

    def test_write_and_delete_queries_use_their_flags(self, db, engine, alice):
        engine.define_rule("invoice", {"name": "Read all", "groups": ["salesperson"]})
        engine.define_rule(
            "invoice",
            {
                "name": "Change own open",
                "domain": [["user_id", "=", "{user.id}"], ["state", "=", "open"]],
                "groups": ["salesperson"],
                "perm_read": False,
                "perm_write": True,
                "perm_delete": True,
            },
        )

        assert fetch_ids(db, engine.apply_read_rules(select(invoices), "invoice", alice)) == [1, 2, 3, 4]
        assert fetch_ids(db, engine.apply_write_rules(select(invoices), "invoice", alice)) == [1]
        assert fetch_ids(db, engine.apply_delete_rules(select(invoices), "invoice", alice)) == [1]

    def test_no_applicable_partition_returns_nothing(self, db, engine, manager):
        engine.define_rule("invoice", {"name": "Sales", "groups": ["salesperson"]})
        assert fetch_ids(db, engine.apply_rules(select(invoices), "invoice", identity=manager)) == []

    def test_superuser_query_is_unfiltered(self, db, engine, admin):
        engine.define_rule("invoice", {"name": "Nobody", "domain": [["id", "=", -1]], "is_global": True})
        assert fetch_ids(db, engine.apply_rules(select(invoices), "invoice", identity=admin)) == [1, 2, 3, 4]

    @pytest.mark.parametrize("identity_id", [1, 2, 3])
    def test_query_matches_record_decisions(self, db, engine, identity_id):
        engine.define_rule("invoice", {"name": "Open", "domain": [["state", "=", "open"]], "is_global": True})
        engine.define_rule(
            "invoice",
            {"name": "Own invoices", "domain": [["user_id", "=", "{user.id}"]], "groups": ["salesperson"]},
        )
        engine.define_rule(
            "invoice",
            {"name": "Team 10", "domain": [["team_id", "=", 10]], "groups": ["salesperson"]},
        )
        identity = UserIdentity(user_id=identity_id, user_groups={"salesperson"})

        expected = sorted(row["id"] for row in INVOICE_ROWS if engine.can_read(invoice(row), identity))
        assert fetch_ids(db, engine.apply_rules(select(invoices), "invoice", identity=identity)) == expected

    @pytest.mark.parametrize(
        "operator, value",
        [
            ("like", "A_1"),
            ("like", "_"),
            ("like", "Open"),
            ("like", "open"),
            ("like", "%0%"),
            ("ilike", "OPEN"),
            ("ilike", "a_"),
            ("ilike", "B"),
        ],
    )
    def test_pattern_query_matches_record_decisions(self, db, engine, alice, operator, value):
        engine.define_rule("document", {"name": "Match", "domain": [["ref", operator, value]], "is_global": True})

        expected = sorted(
            row["id"] for row in DOCUMENT_ROWS if engine.can_read(EntityRecord("document", dict(row)), alice)
        )
        assert fetch_ids(db, engine.apply_rules(select(documents), "document", identity=alice)) == expected

    def test_like_is_case_sensitive_substring(self, db, engine, alice):
        engine.define_rule("document", {"name": "Match", "domain": [["ref", "like", "A_1"]], "is_global": True})
        assert fetch_ids(db, engine.apply_rules(select(documents), "document", identity=alice)) == [1]

        engine.define_rule("document", {"name": "Match", "domain": [["ref", "like", "Open"]], "is_global": True})
        engine.clear_cache()
        assert fetch_ids(db, engine.apply_rules(select(documents), "document", identity=alice)) == [4]

    def test_scalar_comparison_with_collection_placeholder(self, db, engine, alice, make_record):
        """A list-valued placeholder under '=' grants nothing and never breaks the query."""
        engine.define_rule(
            "invoice", {"name": "Team", "domain": [["team_id", "=", "{user.team_ids}"]], "is_global": True}
        )

        assert engine.can_read(make_record(team_id=10), alice) is False
        assert fetch_ids(db, engine.apply_rules(select(invoices), "invoice", identity=alice)) == []
