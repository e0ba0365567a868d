"""
Manufacturer onboarding and verification tests.

Verifies:
- Registration creates the account and the profile together, or neither
- Verification decisions drive the linked account's active flag
- Deletion removes profile, products and account, and is audited
- Admin password resets and account provisioning
- Account suspension, activation and role changes
"""

import pytest

from bazaar.models import (
    Manufacturer,
    ManufacturerStatus,
    Product,
    Role,
    SessionToken,
    User,
)
from bazaar.services import auth_service, manufacturer_service, order_service, session_service
from bazaar.services.audit_service import list_audit_events
from bazaar.validation import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)

from conftest import TEST_PASSWORD, make_product


PROFILE = {
    "company_name": "Standard Fireworks",
    "contact_person": "Ravi Kumar Iyer",
    "email": "Sales@StandardFireworks.example",
    "phone_number": "04562-220011",
    "city": "Sivakasi",
    "state": "Tamil Nadu",
    "gst_number": "33ABCDE1234F1Z5",
}


def _register(profile=None, username="standardfw", password=TEST_PASSWORD, confirm=TEST_PASSWORD):
    return manufacturer_service.register_manufacturer(
        profile=dict(profile or PROFILE),
        username=username,
        password=password,
        confirm_password=confirm,
    )


class TestRegistration:

    def test_creates_pending_profile_and_linked_account(self, db_session):
        manufacturer = _register()

        assert manufacturer.status == ManufacturerStatus.PENDING
        assert manufacturer.is_verified is False
        assert manufacturer.email == "sales@standardfireworks.example"

        account = manufacturer.user
        assert account is not None
        assert account.role == Role.MANUFACTURER
        assert account.is_active is True
        assert account.username == "standardfw"
        assert account.email == manufacturer.email
        assert account.first_name == "Ravi"
        assert account.last_name == "Kumar Iyer"
        assert account.password_hash != TEST_PASSWORD
        assert auth_service.verify_password(TEST_PASSWORD, account.password_hash)

    def test_password_mismatch_creates_nothing(self, db_session):
        with pytest.raises(ValidationError):
            _register(confirm="Different123")
        assert db_session.query(Manufacturer).count() == 0
        assert db_session.query(User).count() == 0

    def test_missing_required_field(self, db_session):
        profile = dict(PROFILE)
        del profile["contact_person"]
        with pytest.raises(ValidationError):
            _register(profile)
        assert db_session.query(User).count() == 0

    def test_weak_password_creates_nothing(self, db_session):
        with pytest.raises(ValidationError):
            _register(password="short", confirm="short")
        assert db_session.query(Manufacturer).count() == 0
        assert db_session.query(User).count() == 0

    def test_duplicate_manufacturer_email(self, db_session):
        _register()
        with pytest.raises(ConflictError):
            _register(username="someoneelse")
        assert db_session.query(Manufacturer).count() == 1
        assert db_session.query(User).count() == 1

    def test_email_taken_by_other_account_leaves_no_orphan(self, db_session):
        auth_service.create_user(
            username="shopper",
            email="sales@standardfireworks.example",
            password=TEST_PASSWORD,
        )
        with pytest.raises(ConflictError):
            _register()
        assert db_session.query(Manufacturer).count() == 0
        assert db_session.query(User).count() == 1

    def test_username_taken(self, db_session, retailer):
        with pytest.raises(ConflictError):
            _register(username=retailer.username)
        assert db_session.query(Manufacturer).count() == 0


class TestVerification:

    @pytest.mark.parametrize(
        "status,verified",
        [
            (ManufacturerStatus.APPROVED, True),
            (ManufacturerStatus.ACTIVE, True),
            (ManufacturerStatus.REJECTED, False),
            (ManufacturerStatus.SUSPENDED, False),
            (ManufacturerStatus.INACTIVE, False),
            (ManufacturerStatus.PENDING, False),
        ],
    )
    def test_is_verified_follows_status(self, db_session, admin, status, verified):
        manufacturer = _register()
        result = manufacturer_service.verify_manufacturer(
            manufacturer.id, status=status, notes="Reviewed", admin_id=admin.id
        )
        assert result.status == status
        assert result.is_verified is verified
        assert result.verification_notes == "Reviewed"
        assert result.verified_by == admin.id
        assert result.verified_at is not None

    def test_approve_activates_account(self, db_session, admin):
        manufacturer = _register()
        manufacturer.user.is_active = False
        db_session.commit()

        manufacturer_service.verify_manufacturer(manufacturer.id, status=ManufacturerStatus.APPROVED, admin_id=admin.id)
        assert db_session.get(User, manufacturer.user_id).is_active is True

    def test_reject_deactivates_account_and_revokes_sessions(self, db_session, admin):
        manufacturer = _register()
        _, token = session_service.create_session(manufacturer.user_id)

        manufacturer_service.verify_manufacturer(manufacturer.id, status=ManufacturerStatus.REJECTED, admin_id=admin.id)

        account = db_session.get(User, manufacturer.user_id)
        assert account.is_active is False
        assert session_service.validate_session(token) is None
        assert auth_service.authenticate(account.username, TEST_PASSWORD) is None

    @pytest.mark.parametrize("status", [ManufacturerStatus.INACTIVE, ManufacturerStatus.PENDING])
    @pytest.mark.parametrize("initially_active", [True, False])
    def test_inactive_and_pending_leave_account_unchanged(self, db_session, admin, status, initially_active):
        manufacturer = _register()
        manufacturer.user.is_active = initially_active
        db_session.commit()

        manufacturer_service.verify_manufacturer(manufacturer.id, status=status, admin_id=admin.id)
        assert db_session.get(User, manufacturer.user_id).is_active is initially_active

    def test_unknown_status(self, db_session, admin):
        manufacturer = _register()
        with pytest.raises(ValidationError):
            manufacturer_service.verify_manufacturer(manufacturer.id, status="MAYBE", admin_id=admin.id)

    def test_unknown_manufacturer(self, db_session, admin):
        with pytest.raises(NotFoundError):
            manufacturer_service.verify_manufacturer(999, status=ManufacturerStatus.APPROVED, admin_id=admin.id)

    def test_verification_is_audited(self, db_session, admin):
        manufacturer = _register()
        manufacturer_service.verify_manufacturer(manufacturer.id, status=ManufacturerStatus.APPROVED, admin_id=admin.id)
        events = list_audit_events(entity_type="manufacturer", entity_id=manufacturer.id)
        assert events[-1].event_type == "manufacturer.verified"
        assert "PENDING -> APPROVED" in events[-1].note

    def test_every_status_has_an_effect(self):
        assert set(manufacturer_service.VERIFICATION_ACCOUNT_EFFECTS) == set(ManufacturerStatus.ALL)


class TestDeletion:

    def test_deletes_profile_products_and_account(self, db_session, admin):
        manufacturer = _register()
        manufacturer_service.verify_manufacturer(manufacturer.id, status=ManufacturerStatus.APPROVED, admin_id=admin.id)
        make_product(db_session, manufacturer, "Bijili", "5.00", 100)
        session_service.create_session(manufacturer.user_id)
        manufacturer_id, user_id = manufacturer.id, manufacturer.user_id

        manufacturer_service.delete_manufacturer(manufacturer_id, actor_user_id=admin.id)

        assert db_session.get(Manufacturer, manufacturer_id) is None
        assert db_session.get(User, user_id) is None
        assert db_session.query(Product).count() == 0
        assert db_session.query(SessionToken).filter_by(user_id=user_id).count() == 0

        events = list_audit_events(entity_type="manufacturer", entity_id=manufacturer_id)
        assert events[-1].event_type == "manufacturer.deleted"
        assert events[-1].actor_user_id == admin.id

    def test_refused_while_products_are_ordered(self, db_session, admin, retailer, manufacturer, sparkler):
        order_service.create_order(retailer.id, [{"product_id": sparkler.id, "quantity": 1}])

        with pytest.raises(InvalidStateError):
            manufacturer_service.delete_manufacturer(manufacturer.id, actor_user_id=admin.id)
        assert db_session.get(Manufacturer, manufacturer.id) is not None

    def test_unknown_manufacturer(self, db_session):
        with pytest.raises(NotFoundError):
            manufacturer_service.delete_manufacturer(4040)


class TestAccounts:

    def test_reset_password(self, db_session, admin):
        manufacturer = _register()
        _, token = session_service.create_session(manufacturer.user_id)

        user, temp_password = manufacturer_service.reset_manufacturer_password(
            "SALES@standardfireworks.example", actor_user_id=admin.id
        )

        assert user.id == manufacturer.user_id
        assert len(temp_password) == 12
        assert auth_service.verify_password(temp_password, user.password_hash)
        assert not auth_service.verify_password(TEST_PASSWORD, user.password_hash)
        assert session_service.validate_session(token) is None

        events = list_audit_events(entity_type="user", entity_id=user.id)
        assert events[-1].event_type == "account.password_reset"
        assert temp_password not in (events[-1].note or "")

    def test_reset_password_unknown_email(self, db_session):
        with pytest.raises(NotFoundError):
            manufacturer_service.reset_manufacturer_password("nobody@example.com")

    def test_reset_password_refuses_non_manufacturer(self, db_session, retailer):
        with pytest.raises(InvalidStateError):
            manufacturer_service.reset_manufacturer_password(retailer.email)

    def test_provision_account_for_unlinked_profile(self, db_session, admin):
        manufacturer = Manufacturer(
            company_name="Anil Fire Works",
            contact_person="Anil Kumar",
            email="anil@anilfw.example",
            status=ManufacturerStatus.APPROVED,
            is_verified=True,
        )
        db_session.add(manufacturer)
        db_session.commit()
        assert manufacturer_service.has_account("anil@anilfw.example") is False

        user, temp_password = manufacturer_service.provision_account(manufacturer.id, actor_user_id=admin.id)

        assert user.username == "anilfirewo"
        assert user.role == Role.MANUFACTURER
        assert user.is_active is True
        assert db_session.get(Manufacturer, manufacturer.id).user_id == user.id
        assert auth_service.authenticate("anil@anilfw.example", temp_password).id == user.id

        with pytest.raises(ConflictError):
            manufacturer_service.provision_account(manufacturer.id)

    def test_generate_temporary_password_passes_strength_rules(self):
        for _ in range(20):
            auth_service.validate_password_strength(auth_service.generate_temporary_password())


class TestQueries:

    def test_list_and_counts(self, db_session, admin):
        first = _register()
        _register(
            profile=dict(PROFILE, company_name="Ayyan Fireworks", email="hello@ayyan.example"),
            username="ayyan",
        )
        manufacturer_service.verify_manufacturer(first.id, status=ManufacturerStatus.APPROVED, admin_id=admin.id)

        assert manufacturer_service.list_manufacturers()["count"] == 2
        verified = manufacturer_service.list_manufacturers(verified=True)
        assert [m["id"] for m in verified["items"]] == [first.id]
        pending = manufacturer_service.list_manufacturers(status=ManufacturerStatus.PENDING)
        assert pending["items"][0]["company_name"] == "Ayyan Fireworks"

        counts = manufacturer_service.manufacturer_counts()
        assert counts["total"] == 2
        assert counts["verified"] == 1
        assert counts["unverified"] == 1
        assert counts["by_status"][ManufacturerStatus.APPROVED] == 1
        assert counts["by_status"][ManufacturerStatus.REJECTED] == 0

    def test_update_profile_ignores_status(self, db_session):
        manufacturer = _register()
        updated = manufacturer_service.update_manufacturer(
            manufacturer.id, {"city": "Virudhunagar", "status": "APPROVED", "is_verified": True}
        )
        assert updated.city == "Virudhunagar"
        assert updated.status == ManufacturerStatus.PENDING
        assert updated.is_verified is False

    def test_update_rejects_blank_required_field(self, db_session):
        manufacturer = _register()
        with pytest.raises(ValidationError):
            manufacturer_service.update_manufacturer(manufacturer.id, {"company_name": "  "})

    def test_lookup_by_email(self, db_session):
        manufacturer = _register()
        assert manufacturer_service.get_manufacturer_by_email("sales@standardfireworks.example").id == manufacturer.id
        with pytest.raises(NotFoundError):
            manufacturer_service.get_manufacturer_by_email("missing@example.com")

    def test_search_by_company_city_and_state(self, db_session):
        standard = _register()
        ayyan = _register(
            profile=dict(
                PROFILE,
                company_name="Ayyan Fireworks",
                email="hello@ayyan.example",
                city="Madurai",
            ),
            username="ayyan",
        )

        def ids(**filters):
            return [m["id"] for m in manufacturer_service.list_manufacturers(**filters)["items"]]

        assert ids(search="standard") == [standard.id]
        assert ids(search="FIREWORKS") == [ayyan.id, standard.id]
        assert ids(city="Madurai") == [ayyan.id]
        assert ids(state="Tamil Nadu") == [ayyan.id, standard.id]
        assert ids(state="Kerala") == []


class TestAccountAdministration:

    def test_list_users_by_role_and_active(self, db_session, admin, retailer, manufacturer):
        result = auth_service.list_users(role=Role.RETAILER)
        assert [u["username"] for u in result["items"]] == ["retailer"]
        assert auth_service.list_users()["count"] == 3
        assert auth_service.list_users(active=False)["count"] == 0
        with pytest.raises(ValidationError):
            auth_service.list_users(role="SUPERUSER")

    def test_suspend_revokes_sessions_and_blocks_login(self, db_session, admin, retailer):
        _, token = session_service.create_session(retailer.id)

        user = auth_service.set_active(retailer.id, False, actor_user_id=admin.id)
        assert user.is_active is False
        assert session_service.validate_session(token) is None
        open_sessions = db_session.query(SessionToken).filter_by(user_id=retailer.id, is_revoked=False)
        assert open_sessions.count() == 0
        assert auth_service.authenticate("retailer", TEST_PASSWORD) is None

        events = list_audit_events(entity_type="user", entity_id=retailer.id)
        assert [e.event_type for e in events] == ["account.deactivated"]

        auth_service.set_active(retailer.id, True, actor_user_id=admin.id)
        assert auth_service.authenticate("retailer", TEST_PASSWORD).id == retailer.id

    def test_admin_cannot_suspend_self(self, db_session, admin):
        with pytest.raises(InvalidStateError):
            auth_service.set_active(admin.id, False, actor_user_id=admin.id)
        assert auth_service.get_user(admin.id).is_active is True

    def test_set_role(self, db_session, admin, retailer):
        user = auth_service.set_role(retailer.id, Role.DASHBOARD_ADMIN, actor_user_id=admin.id)
        assert user.role == Role.DASHBOARD_ADMIN
        events = list_audit_events(entity_type="user", entity_id=retailer.id)
        assert events[-1].note == "RETAILER -> DASHBOARD_ADMIN"

        with pytest.raises(ValidationError):
            auth_service.set_role(retailer.id, "OWNER", actor_user_id=admin.id)
        with pytest.raises(InvalidStateError):
            auth_service.set_role(admin.id, Role.RETAILER, actor_user_id=admin.id)
        with pytest.raises(NotFoundError):
            auth_service.set_role(9999, Role.RETAILER, actor_user_id=admin.id)
