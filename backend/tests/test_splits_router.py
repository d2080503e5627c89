"""
Tests for the /api/splits router.

Covers:
- session lifecycle: create, get, delete, retake (PUT /receipt)
- people and tip
- assign / reassign / clear, including 409 on over-allocation and 404 on unknown ids
- item filtering, JSON summary and the plain-text summary
"""
import pytest

ITEMS = [
    {"description": "Beer", "price": 30.0, "quantity": 3},
    {"description": "Pizza", "price": 18.0, "quantity": 1},
]


async def open_split(client, **extra):
    resp = await client.post("/api/splits", json={"items": ITEMS, **extra})
    assert resp.status_code == 201
    return resp.json()


async def add_person(client, split_id, name):
    resp = await client.post(f"/api/splits/{split_id}/people", json={"name": name})
    assert resp.status_code == 201
    return resp.json()


async def table_for_two(client, **extra):
    split = await open_split(client, **extra)
    alice = await add_person(client, split["id"], "Alice")
    bob = await add_person(client, split["id"], "Bob")
    return split["id"], alice["id"], bob["id"]


async def assign(client, split_id, person_id, selections):
    return await client.post(f"/api/splits/{split_id}/assign",
                             json={"personId": person_id, "selections": selections})


# ── Lifecycle ────────────────────────────────────────────────────────────────

class TestLifecycle:

    @pytest.mark.asyncio
    async def test_create(self, client, store):
        split = await open_split(client, currency="zar", tipPercentage=10)
        assert len(store) == 1
        assert split["currency"] == "ZAR"
        assert split["currencySymbol"] == "R"
        assert split["tipPercentage"] == 10
        assert split["people"] == []
        assert [i["id"] for i in split["items"]] == ["item-0", "item-1"]
        beer = split["items"][0]
        assert beer["allocations"] == {}
        assert beer["remaining"] == 3
        assert beer["fullyAllocated"] is False
        assert split["summary"]["billTotal"] == pytest.approx(48.0)
        assert split["summary"]["isComplete"] is False

    @pytest.mark.asyncio
    async def test_default_tip_and_currency(self, client):
        split = await open_split(client)
        assert split["currency"] == "USD"
        assert split["currencySymbol"] == "$"
        assert split["tipPercentage"] == 15

    @pytest.mark.asyncio
    async def test_get(self, client):
        split = await open_split(client)
        resp = await client.get(f"/api/splits/{split['id']}")
        assert resp.status_code == 200
        assert resp.json() == split

    @pytest.mark.asyncio
    async def test_unknown_split(self, client):
        resp = await client.get("/api/splits/does-not-exist")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_delete(self, client, store):
        split = await open_split(client)
        resp = await client.delete(f"/api/splits/{split['id']}")
        assert resp.status_code == 204
        assert len(store) == 0
        assert (await client.get(f"/api/splits/{split['id']}")).status_code == 404
        assert (await client.delete(f"/api/splits/{split['id']}")).status_code == 404

    @pytest.mark.asyncio
    async def test_empty_items_rejected(self, client):
        resp = await client.post("/api/splits", json={"items": []})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_quantity_out_of_range_rejected(self, client):
        resp = await client.post("/api/splits", json={
            "items": [{"description": "Wings", "price": 6, "quantity": 21}],
        })
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_retake_resets_allocations_keeps_people(self, client):
        split_id, alice, _ = await table_for_two(client)
        await assign(client, split_id, alice, {"item-0": 2})

        resp = await client.put(f"/api/splits/{split_id}/receipt", json={
            "items": [{"description": "Curry", "price": 22.0, "quantity": 2}],
            "currency": "gbp",
        })
        assert resp.status_code == 200
        body = resp.json()
        assert [p["name"] for p in body["people"]] == ["Alice", "Bob"]
        assert body["items"] == [{
            "id": "item-0", "description": "Curry", "price": 22.0, "quantity": 2,
            "allocations": {}, "allocated": 0, "remaining": 2, "fullyAllocated": False,
        }]
        assert body["currency"] == "GBP"
        assert body["summary"]["allocatedTotal"] == 0


# ── People & tip ─────────────────────────────────────────────────────────────

class TestPeopleAndTip:

    @pytest.mark.asyncio
    async def test_add_person(self, client):
        split = await open_split(client)
        person = await add_person(client, split["id"], "  Alice  ")
        assert person["name"] == "Alice"
        assert person["colorIndex"] == 0
        assert person["id"].startswith("person-")
        second = await add_person(client, split["id"], "Bob")
        assert second["colorIndex"] == 1

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, client):
        split = await open_split(client)
        resp = await client.post(f"/api/splits/{split['id']}/people", json={"name": "   "})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_set_tip(self, client):
        split = await open_split(client)
        resp = await client.put(f"/api/splits/{split['id']}/tip", json={"tipPercentage": 20})
        assert resp.status_code == 200
        assert resp.json()["tipPercentage"] == 20

    @pytest.mark.asyncio
    async def test_tip_out_of_range(self, client):
        split = await open_split(client)
        resp = await client.put(f"/api/splits/{split['id']}/tip", json={"tipPercentage": 150})
        assert resp.status_code == 422


# ── Allocation ───────────────────────────────────────────────────────────────

class TestAllocation:

    @pytest.mark.asyncio
    async def test_assign_is_additive(self, client):
        split_id, alice, _ = await table_for_two(client)
        await assign(client, split_id, alice, {"item-0": 1})
        resp = await assign(client, split_id, alice, {"item-0": 1})
        assert resp.status_code == 200
        beer = resp.json()["items"][0]
        assert beer["allocations"] == {alice: 2}
        assert beer["allocated"] == 2
        assert beer["remaining"] == 1

    @pytest.mark.asyncio
    async def test_multi_item_selection(self, client):
        split_id, alice, _ = await table_for_two(client)
        resp = await assign(client, split_id, alice, {"item-0": 3, "item-1": 1})
        body = resp.json()
        assert all(i["fullyAllocated"] for i in body["items"])
        assert body["summary"]["isComplete"] is True

    @pytest.mark.asyncio
    async def test_over_allocation_is_409(self, client):
        split_id, alice, bob = await table_for_two(client)
        await assign(client, split_id, alice, {"item-0": 2})
        resp = await assign(client, split_id, bob, {"item-0": 2})
        assert resp.status_code == 409
        assert resp.json()["detail"] == "Only 1 of 3 units of 'Beer' are unallocated"

    @pytest.mark.asyncio
    async def test_fully_allocated_is_409_and_nothing_applied(self, client):
        split_id, alice, bob = await table_for_two(client)
        await assign(client, split_id, alice, {"item-1": 1})
        resp = await assign(client, split_id, bob, {"item-0": 1, "item-1": 1})
        assert resp.status_code == 409
        assert "already fully allocated" in resp.json()["detail"]
        state = (await client.get(f"/api/splits/{split_id}")).json()
        assert state["items"][0]["allocations"] == {}

    @pytest.mark.asyncio
    async def test_unknown_person_or_item_is_404(self, client):
        split_id, alice, _ = await table_for_two(client)
        assert (await assign(client, split_id, "person-nobody", {"item-0": 1})).status_code == 404
        assert (await assign(client, split_id, alice, {"item-9": 1})).status_code == 404

    @pytest.mark.asyncio
    async def test_reassign_all(self, client):
        split_id, alice, bob = await table_for_two(client)
        await assign(client, split_id, alice, {"item-0": 2})
        await assign(client, split_id, bob, {"item-0": 1})
        resp = await client.post(f"/api/splits/{split_id}/items/item-0/reassign",
                                 json={"toPersonId": bob})
        assert resp.status_code == 200
        assert resp.json()["items"][0]["allocations"] == {bob: 3}

    @pytest.mark.asyncio
    async def test_reassign_from_person(self, client):
        split_id, alice, bob = await table_for_two(client)
        await assign(client, split_id, alice, {"item-1": 1})
        resp = await client.post(f"/api/splits/{split_id}/items/item-1/reassign",
                                 json={"toPersonId": bob, "fromPersonId": alice})
        assert resp.json()["items"][1]["allocations"] == {bob: 1}

    @pytest.mark.asyncio
    async def test_reassign_unallocated_is_409(self, client):
        split_id, _, bob = await table_for_two(client)
        resp = await client.post(f"/api/splits/{split_id}/items/item-0/reassign",
                                 json={"toPersonId": bob})
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_clear_for_person(self, client):
        split_id, alice, bob = await table_for_two(client)
        await assign(client, split_id, alice, {"item-0": 2})
        await assign(client, split_id, bob, {"item-0": 1})
        resp = await client.delete(f"/api/splits/{split_id}/items/item-0/allocations/{alice}")
        assert resp.status_code == 200
        beer = resp.json()["items"][0]
        assert beer["allocations"] == {bob: 1}
        assert beer["remaining"] == 2

    @pytest.mark.asyncio
    async def test_clear_item(self, client):
        split_id, alice, bob = await table_for_two(client)
        await assign(client, split_id, alice, {"item-0": 2})
        await assign(client, split_id, bob, {"item-0": 1})
        resp = await client.delete(f"/api/splits/{split_id}/items/item-0/allocations")
        assert resp.json()["items"][0]["remaining"] == 3

    @pytest.mark.asyncio
    async def test_items_for_person(self, client):
        split_id, alice, bob = await table_for_two(client)
        await assign(client, split_id, bob, {"item-1": 1})
        resp = await client.get(f"/api/splits/{split_id}/items", params={"person_id": bob})
        assert [i["description"] for i in resp.json()] == ["Pizza"]
        resp = await client.get(f"/api/splits/{split_id}/items", params={"person_id": alice})
        assert resp.json() == []
        resp = await client.get(f"/api/splits/{split_id}/items")
        assert len(resp.json()) == 2
        resp = await client.get(f"/api/splits/{split_id}/items", params={"person_id": "ghost"})
        assert resp.status_code == 404


# ── Summary ──────────────────────────────────────────────────────────────────

class TestSummary:

    async def _allocated(self, client):
        split_id, alice, bob = await table_for_two(client, tipPercentage=10)
        await assign(client, split_id, alice, {"item-0": 2})
        await assign(client, split_id, bob, {"item-0": 1, "item-1": 1})
        return split_id

    @pytest.mark.asyncio
    async def test_summary(self, client):
        split_id = await self._allocated(client)
        resp = await client.get(f"/api/splits/{split_id}/summary")
        assert resp.status_code == 200
        body = resp.json()
        alice, bob = body["personSummaries"]
        assert alice["person"]["name"] == "Alice"
        assert alice["subtotal"] == pytest.approx(20.0)
        assert alice["tip"] == pytest.approx(2.0)
        assert alice["total"] == pytest.approx(22.0)
        assert alice["items"] == [
            {"itemId": "item-0", "description": "Beer", "quantity": 2, "amount": 20.0},
        ]
        assert bob["subtotal"] == pytest.approx(28.0)
        assert bob["total"] == pytest.approx(30.8)
        assert body["allocatedTotal"] == pytest.approx(48.0)
        assert body["outstanding"] == pytest.approx(0.0)
        assert body["isComplete"] is True

    @pytest.mark.asyncio
    async def test_summary_text(self, client):
        split_id = await self._allocated(client)
        resp = await client.get(f"/api/splits/{split_id}/summary/text")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")
        assert resp.text == "\n".join([
            "Dine Split Summary",
            "====================",
            "",
            "Bill Total: $48.00",
            "Tip: 10%",
            "",
            "Alice",
            "---------------",
            "  2x Beer: $20.00",
            "  Subtotal: $20.00",
            "  Tip: $2.00",
            "  Total: $22.00",
            "",
            "Bob",
            "---------------",
            "  Beer: $10.00",
            "  Pizza: $18.00",
            "  Subtotal: $28.00",
            "  Tip: $2.80",
            "  Total: $30.80",
            "",
        ]) + "\n"
