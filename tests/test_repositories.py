from __future__ import annotations

import dataclasses
import datetime as dt

import pytest

from zebratrack.entity_key import EntityKey
from zebratrack.errors import InvalidOperation, NotFound, RemoteUnavailable
from zebratrack.models import Frame, ProjectStatus
from zebratrack.projects import ZebraProjectRepository
from zebratrack.users import UserRepository

UTC = dt.timezone.utc


def test_local_lookups_never_reach_zebra(activities, projects, local_activity, fake_api):
    assert activities.get(local_activity.key) == local_activity
    assert projects.get(local_activity.project_key).name == "Side project"
    assert projects.get_by_activity(local_activity.key).key == local_activity.project_key
    assert fake_api.calls == []


def test_local_resolution_works_offline(activities, local_activity, fake_api, monkeypatch):
    def offline():
        raise RemoteUnavailable("connection refused")

    monkeypatch.setattr(fake_api, "fetch_projects", offline)

    assert activities.resolve(str(local_activity.key)) == local_activity
    assert activities.resolve(local_activity.key.id_string) == local_activity
    assert activities.resolve("read") == local_activity
    with pytest.raises(RemoteUnavailable):
        activities.resolve("dev")


def test_remote_lookups_use_cached_catalogue(activities, fake_api, data_dir):
    assert activities.get(EntityKey.remote(100)).name == "Development"
    assert fake_api.call_names() == ["fetch_projects"]

    fresh = ZebraProjectRepository(fake_api, data_dir)
    assert fresh.get_activity(EntityKey.remote(101)).alias == "_meet"
    assert fake_api.call_names() == ["fetch_projects"]


def test_listing_puts_local_entries_first(activities, projects, local_activity):
    assert [activity.name for activity in activities.all()] == ["Reading", "Development", "Meetings"]
    assert "Old work" in [activity.name for activity in activities.all(active_only=False)]
    assert [project.name for project in projects.all()] == ["Side project", "Website"]
    assert [project.name for project in projects.all(())] == ["Side project", "Website", "Archive"]


def test_project_status_mapping(zebra_projects):
    assert zebra_projects.get(EntityKey.remote(11)).status is ProjectStatus.INACTIVE
    assert zebra_projects.get(EntityKey.local()) is None


def test_search_and_alias_resolution(activities, projects, local_activity, remote_activity):
    assert activities.resolve("dev") == remote_activity
    assert activities.resolve("read") == local_activity
    assert activities.resolve("zebra:101").name == "Meetings"
    assert activities.resolve(str(local_activity.key)) == local_activity
    with pytest.raises(NotFound):
        activities.resolve("nope")
    with pytest.raises(NotFound):
        activities.resolve("zebra:999")

    assert [activity.name for activity in activities.search("meet")] == ["Meetings"]
    assert [activity.alias for activity in activities.search_by_alias("_")] == ["_meet"]
    assert [project.name for project in projects.get_by_name_like("web")] == ["Website"]
    assert projects.get_by_activity_alias("read").name == "Side project"
    assert projects.get_by_activity(EntityKey.remote(110)).name == "Archive"
    assert sorted(projects.all_aliases()) == ["_meet", "dev", "read"]


def test_remote_entities_cannot_be_modified(activities, projects, remote_activity):
    remote_project = projects.get(remote_activity.project_key)
    with pytest.raises(InvalidOperation):
        projects.update(dataclasses.replace(remote_project, name="Renamed"))
    with pytest.raises(InvalidOperation):
        projects.delete(remote_project.key)
    with pytest.raises(InvalidOperation):
        activities.update(dataclasses.replace(remote_activity, name="Renamed"))
    with pytest.raises(InvalidOperation):
        activities.delete(remote_activity.key)
    with pytest.raises(InvalidOperation):
        activities.create(remote_project.key, "New activity")


def test_local_activity_crud(activities, local_activity):
    renamed = activities.update(dataclasses.replace(local_activity, name="Books"))
    assert activities.get(local_activity.key) == renamed

    other = activities.create(local_activity.project_key, "Writing", alias="write")
    with pytest.raises(InvalidOperation):
        activities.create(local_activity.project_key, "Duplicate", alias="write")
    with pytest.raises(InvalidOperation):
        activities.update(dataclasses.replace(other, alias="read"))

    activities.delete(other.key)
    assert activities.get(other.key) is None
    with pytest.raises(NotFound):
        activities.delete(other.key)


def test_deleting_activity_with_frames_requires_force(activities, frames, local_activity, developer):
    frame = Frame.create(
        dt.datetime(2024, 5, 6, 6, 0, tzinfo=UTC),
        dt.datetime(2024, 5, 6, 7, 0, tzinfo=UTC),
        local_activity,
        developer,
    )
    frames.save(frame)

    with pytest.raises(InvalidOperation):
        activities.delete(local_activity.key)
    assert frames.get(frame.uuid) is not None

    activities.delete(local_activity.key, force=True)
    assert activities.get(local_activity.key) is None
    assert frames.get(frame.uuid) is None


def test_deleting_project_cascades_with_force(projects, frames, local_activity, developer):
    frames.save(
        Frame.create(
            dt.datetime(2024, 5, 6, 6, 0, tzinfo=UTC),
            dt.datetime(2024, 5, 6, 7, 0, tzinfo=UTC),
            local_activity,
            developer,
        )
    )
    with pytest.raises(InvalidOperation):
        projects.delete(local_activity.project_key)

    projects.delete(local_activity.project_key, force=True)
    assert projects.get(local_activity.project_key) is None
    assert frames.all() == []


def test_empty_local_project_can_be_deleted(projects):
    project = projects.create("Scratch")
    assert projects.delete(project.key) == project
    with pytest.raises(NotFound):
        projects.delete(project.key)


def test_user_is_cached_with_roles(users, fake_api, data_dir, developer):
    user = users.current_user()
    assert user.username == "jdoe"
    assert users.default_role() == developer
    assert users.find_role(8).name == "Lead"
    with pytest.raises(NotFound):
        users.find_role(99)

    cached = UserRepository(fake_api, data_dir, user_id=42)
    assert cached.current_user() == user
    assert fake_api.call_names() == ["fetch_user"]

    users.current_user(refresh=True)
    assert fake_api.call_names() == ["fetch_user", "fetch_user"]


def test_user_repository_without_user(fake_api, data_dir):
    users = UserRepository(fake_api, data_dir)
    assert users.default_role() is None
    with pytest.raises(InvalidOperation):
        users.current_user()


def test_resolve_local_project_by_key_or_name(projects, local_projects, fake_api):
    side = local_projects.create("Side project")
    local_projects.create("Sidecar")

    assert projects.resolve_local(str(side.key)) == side
    assert projects.resolve_local("side project") == side
    with pytest.raises(InvalidOperation):
        projects.resolve_local("side")
    with pytest.raises(NotFound):
        projects.resolve_local("Website")
    with pytest.raises(InvalidOperation):
        local_projects.create("  ")
    assert fake_api.calls == []
