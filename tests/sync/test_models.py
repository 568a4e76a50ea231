"""Tests for roster and settings documents."""

from __future__ import annotations

from team_hub.sync.models import (
    DEFAULT_JERSEY_NUMBER,
    DEFAULT_ROLE,
    EXAMPLE_PLAYERS,
    INITIAL_SETTINGS,
    PlayerProfile,
    ProfileFields,
    TeamSettings,
    example_profile,
    initial_settings_for,
    new_recruit_profile,
)


class TestPlayerProfile:
    """Stored shape of player documents"""

    def test_to_dict_uses_stored_field_names(self):
        profile = PlayerProfile(
            id="p1",
            user_id="u1",
            name="Alex",
            jersey_number=23,
            avatar_ref="https://img/a.png",
            role="Captain",
            created_at="2024-01-01T00:00:00+00:00",
        )

        assert profile.to_dict() == {
            "id": "p1",
            "userId": "u1",
            "name": "Alex",
            "jerseyNumber": 23,
            "headshotUrl": "https://img/a.png",
            "role": "Captain",
            "createdAt": "2024-01-01T00:00:00+00:00",
        }

    def test_document_id_wins_over_body_id(self):
        profile = PlayerProfile.from_dict({"id": "stale", "userId": "u1", "name": "A"}, doc_id="doc-7")
        assert profile.id == "doc-7"

    def test_missing_fields_fall_back_to_defaults(self):
        profile = PlayerProfile.from_dict({"userId": "u1"}, doc_id="p1")

        assert profile.jersey_number == DEFAULT_JERSEY_NUMBER
        assert profile.role == DEFAULT_ROLE
        assert profile.avatar_ref == ""
        assert profile.created_at is None

    def test_string_jersey_number_is_coerced(self):
        profile = PlayerProfile.from_dict({"userId": "u1", "jerseyNumber": "23"}, doc_id="p1")
        assert profile.jersey_number == 23

    def test_with_fields_applies_stored_shape_overrides(self):
        profile = new_recruit_profile("p1", "user-abc")
        edited = profile.with_fields({"name": "Jamie", "jerseyNumber": 7})

        assert edited.name == "Jamie"
        assert edited.jersey_number == 7
        assert edited.id == "p1"
        assert edited.user_id == "user-abc"


class TestFirstContactProfile:
    def test_new_recruit_defaults(self):
        profile = new_recruit_profile("p1", "abcdef123")

        assert profile.user_id == "abcdef123"
        assert profile.jersey_number == 99
        assert profile.role == "New Recruit"
        assert profile.name.strip()
        assert profile.avatar_ref
        assert profile.created_at

    def test_round_trip_keeps_identity(self):
        profile = new_recruit_profile("p1", "abcdef123")
        restored = PlayerProfile.from_dict(profile.to_dict(), doc_id="p1")
        assert restored == profile


class TestTeamSettings:
    def test_admin_ids_are_deduplicated_in_order(self):
        settings = TeamSettings.from_dict({"admin_user_ids": ["b", "a", "b", ""]})
        assert settings.admin_ids == ("b", "a")

    def test_non_list_admin_field_means_no_admins(self):
        settings = TeamSettings.from_dict({"admin_user_ids": "a"})
        assert settings.admin_ids == ()
        assert settings.is_admin("a") is False

    def test_is_admin_rejects_none(self):
        assert TeamSettings(admin_ids=("a",)).is_admin(None) is False

    def test_stored_field_names(self):
        data = initial_settings_for("u1").to_dict()

        assert data["admin_user_ids"] == ["u1"]
        assert data["opponent"] == INITIAL_SETTINGS.opponent
        assert data["dateTime"] == INITIAL_SETTINGS.match_date_time
        assert data["jerseyColor"] == INITIAL_SETTINGS.jersey_color
        assert data["coachsMessage"] == INITIAL_SETTINGS.coach_message
        assert "timestamp" in data
        assert "lastEditor" not in data

    def test_initial_settings_have_single_admin(self):
        assert initial_settings_for("u1").admin_ids == ("u1",)
        assert INITIAL_SETTINGS.admin_ids == ()


class TestExamplePlayers:
    def test_example_profiles_use_fixed_synthetic_ids(self):
        profiles = [example_profile(i, p) for i, p in enumerate(EXAMPLE_PLAYERS)]

        assert [p.id for p in profiles] == ["mock-0", "mock-1", "mock-2"]
        assert all(p.id == p.user_id for p in profiles)
        assert [p.name for p in profiles] == ["Alex Johnson", "Maria Garcia", "Sam Chen"]


def test_profile_fields_is_empty():
    assert ProfileFields().is_empty()
    assert not ProfileFields(jersey_number="7").is_empty()
