from __future__ import annotations

from dataclasses import replace

import pytest

from annotation_sync.errors import ConflictError, EncodeError, OwnershipError, RemoteError, ValidationError
from annotation_sync.model import Annotation, GeometryType, comment_of, title_of
from annotation_sync.source import AnnotationSource
from annotation_sync.store import AnnotationStoreRegistry


@pytest.fixture
def source(v2_params, client, stores) -> AnnotationSource:
    return AnnotationSource(v2_params, client, stores=stores)


@pytest.mark.asyncio
async def test_add_posts_and_adopts_server_key(session, source) -> None:
    added = []
    source.signals.child_added.connect(added.append)
    session.queue(200, {"key": "srv1"})

    new_id = await source.add(Annotation.make_point((1.4, 2, 3), prop={"comment": "hi"}))

    assert new_id == "srv1[user:alice]"
    call = session.calls[0]
    assert call.method == "POST"
    assert call.url == "https://clio.test/v2/annotations/hemibrain"
    assert call.json["kind"] == "point"
    assert call.json["pos"] == [1, 2, 3]
    assert call.json["user"] == "alice"
    assert call.json["description"] == "hi"
    assert "timestamp" in call.json["prop"]
    assert "Pt1_2_3[user:alice]" not in source.store
    assert source.store.get_value("srv1[user:alice]")["description"] == "hi"
    assert [a.id for a in added] == ["srv1[user:alice]"]
    assert added[0].key == "srv1"


@pytest.mark.asyncio
async def test_add_existing_id_conflicts_without_request(session, source) -> None:
    session.queue(200, {})
    first = await source.add(Annotation.make_point((1, 2, 3)))
    assert first == "Pt1_2_3[user:alice]"

    with pytest.raises(ConflictError) as exc:
        await source.add(Annotation.make_point((1, 2, 3)))
    assert exc.value.annotation_id == "Pt1_2_3[user:alice]"
    assert len(session.calls) == 1


@pytest.mark.asyncio
async def test_family_a_add_keeps_coordinate_id(session, v1_params, client, stores) -> None:
    source = AnnotationSource(v1_params, client, stores=stores)
    session.queue(200, {"key": "ignored"})
    new_id = await source.add(Annotation.make_point((4, 5, 6), prop={"title": "T"}))
    assert new_id == "4_5_6"
    call = session.calls[0]
    assert call.url == "https://clio.test/clio_toplevel/annotations/hemibrain"
    assert call.json["Kind"] == "Normal"
    assert call.json["title"] == "T"
    assert "4_5_6" in source.store


@pytest.mark.asyncio
async def test_structured_description_merges_into_prop(session, source) -> None:
    session.queue(200, {})
    await source.add(Annotation.make_point((1, 2, 3), description='${{"type": "Merge"}:JSON}'))
    assert session.calls[0].json["prop"]["type"] == "Merge"


@pytest.mark.asyncio
async def test_update_twice_keeps_one_entry(session, source) -> None:
    updated = []
    source.signals.child_updated.connect(updated.append)
    session.queue(200, {"key": "Pt1_2_3"})
    session.queue(200, {"key": "Pt1_2_3"})
    annotation = Annotation.make_point((1, 2, 3), prop={"user": "alice", "comment": "a"})

    assert await source.update(annotation) == {"key": "Pt1_2_3"}
    await source.update(replace(annotation, prop={"user": "alice", "comment": "b"}))

    assert len(session.calls) == 2
    assert len(source.store) == 1
    assert source.store.get_value("Pt1_2_3[user:alice]")["description"] == "b"
    assert [comment_of(a) for a in updated] == ["a", "b"]


@pytest.mark.asyncio
async def test_update_without_overwrite_conflicts(session, source) -> None:
    source.store.add("Pt1_2_3[user:alice]", {"kind": "point", "pos": [1, 2, 3], "user": "alice"})
    with pytest.raises(ConflictError):
        await source.update(Annotation.make_point((1, 2, 3)), overwrite=False)
    assert session.calls == []


@pytest.mark.asyncio
async def test_update_drops_stale_key(session, source) -> None:
    session.queue(200, {})
    stale = Annotation.make_point((1, 2, 3), key="old", prop={"user": "alice"})
    await source.update(stale, id="Pt1_2_3[user:alice]")
    assert "Pt1_2_3[user:alice]" in source.store
    assert "old[user:alice]" not in source.store


@pytest.mark.asyncio
async def test_write_requires_user(session, v2_params, client, stores) -> None:
    source = AnnotationSource(replace(v2_params, user=None), client, stores=stores)
    with pytest.raises(ValidationError):
        await source.add(Annotation.make_point((1, 2, 3)))
    assert session.calls == []


@pytest.mark.asyncio
async def test_family_a_rejects_lines(session, v1_params, client, stores) -> None:
    source = AnnotationSource(v1_params, client, stores=stores)
    with pytest.raises(EncodeError):
        await source.update(Annotation.make_line((0, 0, 0), (1, 1, 1)))
    assert session.calls == []


@pytest.mark.asyncio
async def test_readonly_source_refuses_writes(session, v2_params, client, stores) -> None:
    source = AnnotationSource(replace(v2_params, readonly=True), client, stores=stores)
    assert source.readonly
    with pytest.raises(OwnershipError):
        await source.add(Annotation.make_point((1, 2, 3)))
    with pytest.raises(OwnershipError):
        await source.update(Annotation.make_point((1, 2, 3)))
    with pytest.raises(OwnershipError):
        await source.delete("Pt1_2_3[user:alice]")
    assert session.calls == []


@pytest.mark.asyncio
async def test_delete_refuses_other_owner(session, source) -> None:
    source.store.add("Pt1_2_3[user:bob]", {"kind": "point", "pos": [1, 2, 3], "user": "bob"})
    with pytest.raises(OwnershipError) as exc:
        await source.delete("Pt1_2_3[user:bob]")
    assert exc.value.owner == "bob"
    assert session.calls == []
    assert "Pt1_2_3[user:bob]" in source.store


@pytest.mark.asyncio
async def test_delete_own_annotation(session, source) -> None:
    deleted = []
    source.signals.child_deleted.connect(deleted.append)
    source.store.add("Pt1_2_3[user:alice]", {"kind": "point", "pos": [1, 2, 3], "user": "alice"})
    session.queue(200, text="")

    await source.delete("Pt1_2_3[user:alice]")

    assert session.calls[0].method == "DELETE"
    assert session.calls[0].url == "https://clio.test/v2/annotations/hemibrain/Pt1_2_3"
    assert "Pt1_2_3[user:alice]" not in source.store
    assert deleted == ["Pt1_2_3[user:alice]"]


@pytest.mark.asyncio
async def test_delete_invalid_id_is_noop(session, source) -> None:
    await source.delete("bogus")
    assert session.calls == []


@pytest.mark.asyncio
async def test_untitled_atlas_point_stays_local(session, atlas_params, client, stores) -> None:
    source = AnnotationSource(atlas_params, client, stores=stores)
    new_id = await source.add(Annotation.make_point((1, 2, 3)))
    assert new_id == "Pt1_2_3[user:alice]"
    assert not source.uploadable(new_id)
    assert session.calls == []

    await source.delete(new_id)
    assert session.calls == []
    assert len(source.store) == 0


@pytest.mark.asyncio
async def test_titled_atlas_point_uses_position_url(session, atlas_params, client, stores) -> None:
    source = AnnotationSource(atlas_params, client, stores=stores)
    session.queue(200, {})
    new_id = await source.add(Annotation.make_point((7, 8, 9), prop={"title": "A"}))
    assert new_id == "Pt7_8_9[user:alice]"
    assert session.calls[0].url == "https://clio.test/v2/atlas/hemibrain?x=7&y=8&z=9"
    assert source.uploadable(new_id)


def test_get_metadata_reads_cache_only(session, source) -> None:
    source.store.add(
        "Ln0_0_0_1_1_1[user:alice]",
        {"kind": "lineseg", "pos": [0, 0, 0, 1, 1, 1], "user": "alice", "title": "L"},
    )
    annotation = source.get_metadata("Ln0_0_0_1_1_1[user:alice]")
    assert annotation is not None
    assert annotation.type is GeometryType.LINE
    assert title_of(annotation) == "L"
    assert source.get_metadata("Pt1_2_3[user:alice]") is None
    with pytest.raises(ValidationError):
        source.get_metadata("bogus")
    assert session.calls == []


def test_validation_errors_follow_kind_schema(v2_params, atlas_params, client, stores) -> None:
    point = Annotation.make_point((1, 2, 3))
    assert AnnotationSource(v2_params, client, stores).validation_errors(point) == []
    atlas = AnnotationSource(atlas_params, client, stores)
    assert atlas.validation_errors(point) == ["Prop: 'title' is a required property"]
    assert atlas.validation_errors(replace(point, prop={"title": "A"})) == []


def test_invalidate_cache(source) -> None:
    source.store.add("Pt1_2_3[user:alice]", {"kind": "point", "pos": [1, 2, 3]})
    source.invalidate_cache()
    assert len(source.store) == 0


@pytest.mark.asyncio
async def test_failed_add_leaves_cache_untouched_and_can_retry(session, source) -> None:
    session.queue(500, text="boom")
    with pytest.raises(RemoteError):
        await source.add(Annotation.make_point((1, 2, 3)))
    assert "Pt1_2_3[user:alice]" not in source.store

    session.queue(200, {})
    assert await source.add(Annotation.make_point((1, 2, 3))) == "Pt1_2_3[user:alice]"
    assert len(session.calls) == 2
    assert "Pt1_2_3[user:alice]" in source.store


@pytest.mark.asyncio
async def test_failed_update_restores_previous_entry(session, source) -> None:
    previous = {"kind": "point", "pos": [1, 2, 3], "user": "alice", "description": "old"}
    source.store.add("Pt1_2_3[user:alice]", previous)
    session.queue(500)
    with pytest.raises(RemoteError):
        await source.update(Annotation.make_point((1, 2, 3), prop={"comment": "new"}))
    assert source.store.get_value("Pt1_2_3[user:alice]") == previous


@pytest.mark.asyncio
async def test_chunk_source_shares_cache_with_crud_source(session, source) -> None:
    session.queue(200, {"Pt1_2_3": {"kind": "point", "pos": [1, 2, 3], "user": "bob"}})
    await source.chunk_source().download()

    assert source.get_metadata("Pt1_2_3[user:bob]") is not None
    with pytest.raises(OwnershipError):
        await source.delete("Pt1_2_3[user:bob]")
    assert [call.method for call in session.calls] == ["GET"]


@pytest.mark.asyncio
async def test_separate_sources_on_one_registry_see_each_other(session, v2_params, client) -> None:
    stores = AnnotationStoreRegistry()
    session.queue(200, {"Pt1_2_3": {"kind": "point", "pos": [1, 2, 3], "user": "bob"}})
    await AnnotationSource(v2_params, client, stores).chunk_source().download()

    other = AnnotationSource(v2_params, client, stores)
    with pytest.raises(OwnershipError):
        await other.delete("Pt1_2_3[user:bob]")
    assert len(session.calls) == 1
