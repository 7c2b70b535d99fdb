import io

import httpx
import pytest
from PIL import Image
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from autonostalgia.config import settings
from autonostalgia.routes.vehicles import get_nhtsa_client
from autonostalgia.services import images
from autonostalgia.services.errors import ValidationFailed
from autonostalgia.services.nhtsa_client import NHTSAClient
from autonostalgia.main import app


def _png(size=(2400, 1200), mode="RGBA"):
    buf = io.BytesIO()
    Image.new(mode, size, (200, 30, 30, 128) if mode == "RGBA" else (200, 30, 30)).save(buf, format="PNG")
    return buf.getvalue()


def _body(**overrides):
    body = {"make": "Ford", "model": "Mustang", "year": 1968, "registration_number": "GP 1968", "vin": "8t01c123"}
    body.update(overrides)
    return body


def test_create_list_update_delete(client, customer, auth_headers):
    headers = auth_headers(customer)
    r = client.post("/vehicles", json=_body(), headers=headers)
    assert r.status_code == 201, r.text
    vehicle = r.json()
    assert vehicle["vin"] == "8T01C123"
    assert vehicle["images"] == []

    assert [v["id"] for v in client.get("/vehicles", headers=headers).json()] == [vehicle["id"]]

    r = client.put(f"/vehicles/{vehicle['id']}", json={"mileage": 120000, "color": "Highland Green"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["mileage"] == 120000

    r = client.put(f"/vehicles/{vehicle['id']}", json={"make": None}, headers=headers)
    assert r.status_code == 400

    assert client.delete(f"/vehicles/{vehicle['id']}", headers=headers).json() == {"status": "ok"}
    assert client.get(f"/vehicles/{vehicle['id']}", headers=headers).status_code == 404


def test_registration_and_vin_are_unique(client, customer, make_profile, auth_headers):
    client.post("/vehicles", json=_body(), headers=auth_headers(customer))
    other = auth_headers(make_profile("other@example.com"))

    r = client.post("/vehicles", json=_body(registration_number=" gp 1968 ", vin=None), headers=other)
    assert r.status_code == 409
    r = client.post("/vehicles", json=_body(registration_number="NEW1", vin="8T01C123"), headers=other)
    assert r.status_code == 409

    r = client.get("/vehicles/check-registration", params={"registration_number": "gp 1968"}, headers=other)
    assert r.json() == {"exists": True}
    r = client.get("/vehicles/check-vin", params={"vin": "unknown"}, headers=other)
    assert r.json() == {"exists": False}


def test_update_may_keep_own_registration(client, customer, auth_headers):
    headers = auth_headers(customer)
    vehicle = client.post("/vehicles", json=_body(), headers=headers).json()
    r = client.put(f"/vehicles/{vehicle['id']}", json={"registration_number": "GP 1968"}, headers=headers)
    assert r.status_code == 200


def test_year_is_validated(client, customer, auth_headers):
    r = client.post("/vehicles", json=_body(year=1850), headers=auth_headers(customer))
    assert r.status_code == 422


def test_vehicles_are_private(client, vehicle, make_profile, admin, auth_headers):
    stranger = make_profile("stranger@example.com")
    assert client.get(f"/vehicles/{vehicle.id}", headers=auth_headers(stranger)).status_code == 404
    assert client.get(f"/vehicles/{vehicle.id}", headers=auth_headers(admin)).status_code == 200


def test_assessors_cannot_register_vehicles(client, assessor, auth_headers):
    assert client.post("/vehicles", json=_body(), headers=auth_headers(assessor)).status_code == 403


# =====================
# Images
# =====================


def test_compress_flattens_and_bounds():
    data = images.compress_image(_png(), 1920, 85)
    img = Image.open(io.BytesIO(data))
    assert img.format == "JPEG"
    assert img.mode == "RGB"
    assert max(img.size) == 1920


def test_compress_rejects_garbage():
    with pytest.raises(ValidationFailed):
        images.compress_image(b"definitely not an image", 1920, 85)


def test_compress_rejects_oversized_pixel_counts(monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    with pytest.raises(ValidationFailed):
        images.compress_image(_png(), 1920, 85)


@pytest.mark.parametrize("slot", [0, 7])
def test_slots_are_bounded(db, storage, vehicle, slot):
    with pytest.raises(ValidationFailed):
        images.store_vehicle_image(db, storage, vehicle, slot, _png())


def test_store_writes_image_and_thumbnail(db, storage, vehicle):
    updated = images.store_vehicle_image(db, storage, vehicle, 2, _png(mode="RGB"))

    bucket = settings.vehicle_images_bucket
    assert updated.image_2_url == storage.get_public_url(bucket, images.image_key(vehicle, 2))
    thumb = Image.open(io.BytesIO(storage.read(bucket, images.thumbnail_key(vehicle, 2))))
    assert max(thumb.size) == settings.thumbnail_max_dimension

    images.remove_vehicle_image(db, storage, updated, 2)
    assert updated.image_2_url is None
    assert not storage.exists(bucket, images.image_key(vehicle, 2))


def test_upload_over_http_and_serve(client, customer, vehicle, auth_headers):
    headers = auth_headers(customer)
    r = client.post(
        f"/vehicles/{vehicle.id}/images/1",
        files={"file": ("car.png", _png(mode="RGB"), "image/png")},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    url = r.json()["images"][0]["url"]
    assert r.json()["images"][0]["slot"] == 1

    served = client.get(url.replace("http://testserver", ""))
    assert served.status_code == 200
    assert served.headers["content-type"] == "image/jpeg"

    assert client.get("/files/secret-bucket/anything.jpg").status_code == 404

    r = client.delete(f"/vehicles/{vehicle.id}/images/1", headers=headers)
    assert r.json()["images"] == []


# =====================
# Catalogue
# =====================


def _vpic(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path.endswith("/GetAllMakes"):
        return httpx.Response(200, json={"Results": [{"Make_Name": "TOYOTA"}, {"Make_Name": "alfa romeo"}]})
    if "/GetModelsForMake" in path:
        return httpx.Response(200, json={"Results": [{"Model_Name": "Supra"}, {"Model_Name": "Celica"}]})
    return httpx.Response(500)


def test_catalog_endpoints_use_vpic(client, customer, auth_headers):
    app.dependency_overrides[get_nhtsa_client] = lambda: NHTSAClient(transport=httpx.MockTransport(_vpic))
    headers = auth_headers(customer)

    makes = client.get("/vehicles/catalog/makes", headers=headers).json()
    assert [m["value"] for m in makes] == ["alfa romeo", "TOYOTA"]

    models = client.get("/vehicles/catalog/models", params={"make": "Toyota"}, headers=headers).json()
    assert [m["label"] for m in models] == ["Celica", "Supra"]

    # upstream failure degrades to an empty decode
    assert client.get("/vehicles/catalog/decode-vin/JT2MA70L", headers=headers).json() == {}

    years = client.get("/vehicles/catalog/years", headers=headers).json()
    assert years[-1] == {"value": "1900", "label": "1900"}


def test_images_survive_a_failed_delete(client, db, storage, customer, vehicle, auth_headers, monkeypatch):
    images.store_vehicle_image(db, storage, vehicle, 1, _png(mode="RGB"))
    bucket = settings.vehicle_images_bucket
    key, thumb = images.image_key(vehicle, 1), images.thumbnail_key(vehicle, 1)

    def boom(self):
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(Session, "commit", boom)
    with pytest.raises(OperationalError):
        client.delete(f"/vehicles/{vehicle.id}", headers=auth_headers(customer))
    monkeypatch.undo()

    assert storage.exists(bucket, key)
    assert client.delete(f"/vehicles/{vehicle.id}", headers=auth_headers(customer)).json() == {"status": "ok"}
    assert not storage.exists(bucket, key)
    assert not storage.exists(bucket, thumb)
