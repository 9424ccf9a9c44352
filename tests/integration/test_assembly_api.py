from __future__ import annotations

from decimal import Decimal


def test_check_in_and_quorum(client, assembly_data) -> None:
    quorum = client.get("/api/assemblies/asm-1/quorum")
    assert quorum.status_code == 200
    assert quorum.json()["reached"] is False

    first = client.post("/api/attendance", json={"unit_id": assembly_data.unit_102, "checked_in_by": "door"})
    assert first.status_code == 201
    again = client.post("/api/attendance", json={"unit_id": assembly_data.unit_102})
    assert again.json()["id"] == first.json()["id"]
    client.post("/api/attendance", json={"unit_id": assembly_data.unit_103})

    body = client.get("/api/assemblies/asm-1/quorum").json()
    assert Decimal(body["fraction"]) == Decimal("0.7")
    assert body["present_units"] == 2
    assert body["reached"] is True
    assert body["status"] == "quorum reached"


def test_quorum_unknown_assembly(client, db_session) -> None:
    assert client.get("/api/assemblies/missing/quorum").status_code == 404
    assert client.post("/api/attendance", json={"unit_id": "missing"}).status_code == 404


def test_vote_lifecycle(client, assembly_data) -> None:
    created = client.post(
        "/api/votes",
        json={"assembly_id": "asm-1", "title": "Approve budget", "options": ["Yes", "No"]},
    )
    assert created.status_code == 201
    vote = created.json()
    yes, no = (option["id"] for option in vote["options"])

    assert client.post(
        f"/api/votes/{vote['id']}/ballots", json={"unit_id": assembly_data.unit_101, "option_id": yes}
    ).status_code == 201
    assert client.post(
        f"/api/votes/{vote['id']}/ballots", json={"unit_id": assembly_data.unit_102, "option_id": no}
    ).status_code == 201
    conflict = client.post(
        f"/api/votes/{vote['id']}/ballots", json={"unit_id": assembly_data.unit_101, "option_id": no}
    )
    assert conflict.status_code == 409

    results = client.get(f"/api/votes/{vote['id']}/results").json()
    percentages = {entry["option"]: Decimal(entry["percentage"]) for entry in results["results"]}
    assert Decimal(results["total_weight"]) == Decimal("0.75")
    assert percentages["Yes"] == Decimal("40")
    assert percentages["No"] == Decimal("60")

    assert client.post(f"/api/votes/{vote['id']}/close").json()["status"] == "CLOSED"
    closed = client.post(
        f"/api/votes/{vote['id']}/ballots", json={"unit_id": assembly_data.unit_103, "option_id": yes}
    )
    assert closed.status_code == 422

    listed = client.get("/api/assemblies/asm-1/votes").json()
    assert [item["id"] for item in listed] == [vote["id"]]


def test_create_vote_needs_two_options(client, assembly_data) -> None:
    response = client.post(
        "/api/votes", json={"assembly_id": "asm-1", "title": "Single", "options": ["Yes"]}
    )
    assert response.status_code == 422


def test_reports(client, assembly_data) -> None:
    client.post(
        "/api/proxies",
        json={
            "principal_id": assembly_data.alice,
            "representative": {"kind": "INTERNAL", "member_id": assembly_data.carol},
            "type": "PDF",
            "document_ref": "s3://proxies/alice.pdf",
        },
    )
    client.post("/api/attendance", json={"unit_id": assembly_data.unit_101})

    attendance = client.get("/api/assemblies/asm-1/reports/attendance").json()
    assert [(row["unit"], row["representative_name"]) for row in attendance["rows"]] == [("101", "Carol Mejía")]
    assert Decimal(attendance["total_coefficient"]) == Decimal("0.3")

    absence = client.get("/api/assemblies/asm-1/reports/absence").json()
    assert sorted(row["unit"] for row in absence["rows"]) == ["102", "103"]

    proxies = client.get("/api/assemblies/asm-1/reports/proxies").json()
    assert [(row["unit"], row["principal_doc"], row["representative_doc"]) for row in proxies] == [
        ("101", "CC-100", "CC-300")
    ]

    assert client.get("/api/assemblies/asm-1/reports/votes").json() == []


def test_health(client) -> None:
    assert client.get("/api/healthz").json()["status"] == "ok"
    assert client.get("/api/readyz").json()["status"] == "ready"
