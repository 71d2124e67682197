from __future__ import annotations

from fastapi.testclient import TestClient

from claimflow.core.db import SessionLocal
from claimflow.core.security import create_access_token
from claimflow.main import app
from claimflow.modules.identity.models import UserRole
from claimflow.modules.identity.service import create_organization, create_user
from claimflow.modules.policy.service import seed_default_policy

client = TestClient(app)


def _setup() -> dict[str, str]:
    with SessionLocal() as session:
        org = create_organization(session, name="Acme", base_currency="USD")
        admin = create_user(
            session, org_id=org.id, email="admin@acme.com", password="pw", role=UserRole.ADMIN
        )
        manager = create_user(
            session, org_id=org.id, email="manager@acme.com", password="pw", role=UserRole.MANAGER
        )
        create_user(
            session,
            org_id=org.id,
            email="employee@acme.com",
            password="pw",
            role=UserRole.EMPLOYEE,
            manager_id=manager.id,
        )
        finance = create_user(
            session, org_id=org.id, email="finance@acme.com", password="pw", role=UserRole.FINANCE
        )
        seed_default_policy(session, org_id=org.id)
        return {
            "admin": _bearer(create_access_token(subject=str(admin.id), org_id=str(org.id))),
            "manager": _bearer(create_access_token(subject=str(manager.id), org_id=str(org.id))),
            "finance": _bearer(create_access_token(subject=str(finance.id), org_id=str(org.id))),
        }


def _bearer(token: str) -> str:
    return f"Bearer {token}"


def _login(email: str) -> str:
    res = client.post("/api/auth/token", data={"username": email, "password": "pw"})
    assert res.status_code == 200
    return _bearer(res.json()["access_token"])


def test_healthz_and_auth_required():
    assert client.get("/healthz").json() == {"status": "ok"}
    assert client.get("/api/claims").status_code == 401
    assert client.get("/api/claims", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_login_rejects_bad_password():
    _setup()
    res = client.post("/api/auth/token", data={"username": "employee@acme.com", "password": "x"})
    assert res.status_code == 401


def test_claim_walks_the_chain_over_http():
    tokens = _setup()
    tokens["employee"] = _login("employee@acme.com")

    def h(who: str) -> dict[str, str]:
        return {"Authorization": tokens[who]}

    res = client.post(
        "/api/approval-rules",
        json={
            "name": "Standard",
            "steps": [{"type": "manager"}, {"type": "role", "role": "FINANCE"}],
            "is_default": True,
        },
        headers=h("admin"),
    )
    assert res.status_code == 200
    rule_id = res.json()["id"]

    # Only admins manage rules.
    res = client.post(
        "/api/approval-rules", json={"name": "Mine", "steps": []}, headers=h("employee")
    )
    assert res.status_code == 403

    claim_id = client.post("/api/claims", json={"title": "Berlin"}, headers=h("employee")).json()[
        "id"
    ]
    res = client.post(
        f"/api/claims/{claim_id}/items",
        json={
            "category": "meal",
            "expense_date": "2026-03-02",
            "amount_original_amount": "40",
            "amount_original_currency": "USD",
            "receipt_url": "https://receipts.acme.com/1.pdf",
        },
        headers=h("employee"),
    )
    assert res.status_code == 200

    res = client.post(
        "/api/approval-rules/preview", json={"claim_id": claim_id}, headers=h("employee")
    )
    assert res.json()["id"] == rule_id

    alerts = client.get(f"/api/claims/{claim_id}/risk-alerts", headers=h("employee")).json()
    assert len(alerts) == 1
    assert alerts[0]["rule_name"] == "Daily meal allowance"
    assert alerts[0]["severity"] == "high"
    assert alerts[0]["percentage"] == "60.00"

    res = client.post(f"/api/claims/{claim_id}/submit", headers=h("employee"))
    assert res.status_code == 200
    assert res.json()["status"] == "PENDING"

    chain = client.get(f"/api/claims/{claim_id}/chain", headers=h("employee")).json()
    manager_step, finance_step = chain["steps"]
    assert chain["active_step_id"] == manager_step["id"]
    assert chain["can_act"] is False
    assert chain["complete"] is False

    inbox = client.get("/api/approvals/inbox", headers=h("manager")).json()
    assert [c["id"] for c in inbox] == [claim_id]

    res = client.post(
        f"/api/claims/{claim_id}/steps/{manager_step['id']}/approve",
        json={},
        headers=h("finance"),
    )
    assert res.status_code == 403
    assert res.json()["detail"]["code"] == "unauthorized"

    approve_url = f"/api/claims/{claim_id}/steps/{manager_step['id']}/approve"
    res = client.post(approve_url, json={"comment": "ok"}, headers=h("manager"))
    assert res.status_code == 200
    assert res.json()["active_step_id"] == finance_step["id"]

    res = client.post(approve_url, json={}, headers=h("manager"))
    assert res.status_code == 409
    assert res.json()["detail"]["code"] == "already_resolved"

    reject_url = f"/api/claims/{claim_id}/steps/{finance_step['id']}/reject"
    res = client.post(reject_url, json={"reason": "   "}, headers=h("finance"))
    assert res.status_code == 400
    assert res.json()["detail"]["code"] == "invalid_decision"

    res = client.post(reject_url, json={"reason": "missing invoice"}, headers=h("finance"))
    assert res.status_code == 200
    body = res.json()
    assert body["claim_status"] == "REJECTED"
    assert body["active_step_id"] is None
    assert [s["status"] for s in body["steps"]] == ["APPROVED", "REJECTED"]

    claim = client.get(f"/api/claims/{claim_id}", headers=h("employee")).json()
    assert claim["rejection_reason"] == "missing invoice"

    audit = client.get(f"/api/claims/{claim_id}/audit", headers=h("employee")).json()
    assert [e["event_type"] for e in audit] == [
        "claim.submitted",
        "step.approved",
        "step.rejected",
    ]

    res = client.post(f"/api/claims/{claim_id}/reopen", headers=h("employee"))
    assert res.json()["status"] == "DRAFT"


def test_submit_without_rules_returns_unprocessable():
    _setup()
    headers = {"Authorization": _login("employee@acme.com")}
    claim_id = client.post("/api/claims", json={}, headers=headers).json()["id"]
    client.post(
        f"/api/claims/{claim_id}/items",
        json={
            "category": "taxi",
            "expense_date": "2026-03-02",
            "amount_original_amount": "12",
            "amount_original_currency": "USD",
        },
        headers=headers,
    )

    res = client.post(f"/api/claims/{claim_id}/submit", headers=headers)
    assert res.status_code == 422
    assert res.json()["detail"]["code"] == "no_applicable_rule"


def test_policy_completeness_endpoint():
    tokens = _setup()
    headers = {"Authorization": tokens["admin"]}
    policies = client.get("/api/policies", headers=headers).json()
    assert [p["name"] for p in policies] == ["Travel expense policy"]

    report = client.get(
        f"/api/policies/{policies[0]['id']}/completeness", headers=headers
    ).json()
    assert report["is_complete"] is False
    assert [g["rule_name"] for g in report["rule_gaps"]] == ["Trip total"]


def test_cancelled_claim_chain_is_not_complete():
    tokens = _setup()
    tokens["employee"] = _login("employee@acme.com")
    headers = {"Authorization": tokens["employee"]}
    client.post(
        "/api/approval-rules",
        json={
            "name": "Standard",
            "steps": [{"type": "manager"}, {"type": "role", "role": "FINANCE"}],
            "is_default": True,
        },
        headers={"Authorization": tokens["admin"]},
    )
    claim_id = client.post("/api/claims", json={"title": "Lisbon"}, headers=headers).json()["id"]
    client.post(
        f"/api/claims/{claim_id}/items",
        json={
            "category": "taxi",
            "expense_date": "2026-03-02",
            "amount_original_amount": "12",
            "amount_original_currency": "USD",
        },
        headers=headers,
    )
    assert client.post(f"/api/claims/{claim_id}/submit", headers=headers).status_code == 200

    res = client.post(f"/api/claims/{claim_id}/cancel", headers=headers)
    assert res.status_code == 200
    assert res.json()["status"] == "CANCELLED"

    chain = client.get(f"/api/claims/{claim_id}/chain", headers=headers).json()
    assert chain["claim_status"] == "CANCELLED"
    assert [s["status"] for s in chain["steps"]] == ["SKIPPED", "SKIPPED"]
    assert chain["active_step_id"] is None
    assert chain["complete"] is False


def test_rule_with_unknown_category_is_rejected():
    tokens = _setup()
    res = client.post(
        "/api/approval-rules",
        json={
            "name": "Hotels",
            "conditions": {"categories": ["hotels"]},
            "steps": [{"type": "manager"}],
        },
        headers={"Authorization": tokens["admin"]},
    )
    assert res.status_code == 422
    assert client.get(
        "/api/approval-rules", headers={"Authorization": tokens["admin"]}
    ).json() == []
