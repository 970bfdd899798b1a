# tests/test_media_service.py
import asyncio

from app.integrations.base import MediaStatus, RemoteMedia
from app.services.media_service import (
    MediaReconciler, VariantImageTarget, filter_media_sources, match_media,
)
from tests.conftest import FakeCatalogClient


async def _product_with_attached_image(client):
    remote = await client.create_product({
        "title": "Shirt",
        "productOptions": [{"name": "Size", "values": [{"name": "S"}]}],
        "media": [{"originalSource": "https://cdn.example.com/old.jpg", "alt": ""}],
    })
    variant_id = remote.variants[0].id
    await client.attach_media_to_variants(remote.id, [{"variantId": variant_id, "mediaIds": [remote.media[0].id]}])
    return remote, variant_id


def test_filter_media_sources_drops_invalid_and_unsupported():
    entries = [
        {"url": "ftp://cdn.example.com/a.jpg"},
        {"url": "not a url"},
        {"url": "https://cdn.example.com/logo.svg"},
        {"url": "https://cdn.example.com/clip.mp4"},
        {"url": "https://cdn.example.com/a.jpg"},
    ]
    assert filter_media_sources(entries) == [{"url": "https://cdn.example.com/a.jpg"}]


def test_match_media_exact_then_file_name():
    media = [
        RemoteMedia(id="m1", url="https://cdn.example.com/shirt.jpg"),
        RemoteMedia(id="m2", url="https://cdn.shopify.com/files/red_1024x.jpg"),
    ]
    assert match_media("https://cdn.example.com/shirt.jpg", media).id == "m1"
    assert match_media("https://other.example.com/img/shirt.jpg", media).id == "m1"
    assert match_media("https://other.example.com/red.jpg", media).id == "m2"
    assert match_media("https://other.example.com/blue.jpg", media) is None


def test_match_media_requires_file_name_boundary():
    media = [
        RemoteMedia(id="m1", url="https://cdn.shopify.com/files/shirt-blue.jpg"),
        RemoteMedia(id="m2", url="https://cdn.shopify.com/files/shirt_a1b2c3.jpg"),
    ]
    assert match_media("https://cdn.example.com/shirt.jpg", media).id == "m2"
    assert match_media("https://cdn.example.com/shirt.jpg", media[:1]) is None
    assert match_media("https://cdn.example.com/shirt.png", [RemoteMedia(id="m3", url="https://cdn.shopify.com/shirt.webp")]).id == "m3"


def test_replacing_variant_image_detaches_before_attaching():
    client = FakeCatalogClient()
    reconciler = MediaReconciler(client, timeout=0, poll_interval=0, delete_detached=False)

    async def scenario():
        remote, variant_id = await _product_with_attached_image(client)
        attached = await reconciler.sync_variant_images(
            remote.id,
            [VariantImageTarget("local-1", variant_id, "https://cdn.example.com/new.jpg")],
            existing_media=remote.media,
        )
        return remote, variant_id, attached

    remote, variant_id, attached = asyncio.run(scenario())

    names = client.call_names()
    assert "create_media" in names
    detached_at = names.index("detach_media_from_variants")
    assert "attach_media_to_variants" in names[detached_at + 1:]
    assert client.calls_to("detach_media_from_variants")[0][1] == [
        {"variantId": variant_id, "mediaIds": [remote.media[0].id]}
    ]
    assert client.products[remote.id].variants[0].media_ids == [attached["local-1"]]
    assert "delete_media" not in names


def test_detached_orphan_media_is_deleted_when_enabled():
    client = FakeCatalogClient()
    reconciler = MediaReconciler(client, timeout=0, poll_interval=0, delete_detached=True)

    async def scenario():
        remote, variant_id = await _product_with_attached_image(client)
        await reconciler.sync_variant_images(
            remote.id,
            [VariantImageTarget("local-1", variant_id, "https://cdn.example.com/new.jpg")],
            existing_media=remote.media,
        )
        return remote

    remote = asyncio.run(scenario())

    old_media_id = remote.media[0].id
    assert client.calls_to("delete_media") == [(remote.id, [old_media_id])]
    assert old_media_id not in [m.id for m in client.products[remote.id].media]


def test_existing_media_is_reused():
    client = FakeCatalogClient()
    reconciler = MediaReconciler(client, timeout=0, poll_interval=0)

    async def scenario():
        remote = await client.create_product({
            "title": "Shirt",
            "media": [{"originalSource": "https://cdn.example.com/red.jpg", "alt": ""}],
        })
        return remote, await reconciler.sync_variant_images(
            remote.id,
            [VariantImageTarget("local-1", remote.variants[0].id, "https://cdn.example.com/red.jpg")],
            existing_media=remote.media,
        )

    remote, attached = asyncio.run(scenario())

    assert attached == {"local-1": remote.media[0].id}
    assert "create_media" not in client.call_names()
    assert "detach_media_from_variants" not in client.call_names()


def test_media_never_ready_is_not_attached():
    client = FakeCatalogClient()
    client.media_status = MediaStatus.PENDING
    reconciler = MediaReconciler(client, timeout=0, poll_interval=0)

    async def scenario():
        remote = await client.create_product({"title": "Shirt"})
        wait = await reconciler.wait_for_media_ready(remote.id, [])
        attached = await reconciler.sync_variant_images(
            remote.id,
            [VariantImageTarget("local-1", remote.variants[0].id, "https://cdn.example.com/red.jpg")],
        )
        return wait, attached

    wait, attached = asyncio.run(scenario())

    assert wait.ready_ids == [] and not wait.timed_out
    assert attached == {}
    assert "attach_media_to_variants" not in client.call_names()
