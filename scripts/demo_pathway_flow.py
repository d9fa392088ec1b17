"""Demo: walk a learner through a gated pathway using FastAPI TestClient.

Run with:
    python scripts/demo_pathway_flow.py
"""

from __future__ import annotations

from uuid import uuid4

from fastapi.testclient import TestClient

from pathway_progress.main import app


def main() -> None:
    client = TestClient(app)

    # ── Seed configuration ─────────────────────────────────────────
    pathway = client.post(
        "/v1/curriculum/pathways",
        json={"name": "Lead Teacher Track", "target_roles": ["lead teacher"]},
    ).json()

    def add(title: str, config: dict, hint: int, weight: float = 1.0) -> str:
        r = client.post(
            "/v1/curriculum/activities",
            json={
                "pathway_id": pathway["id"],
                "title": title,
                "config": config,
                "weight": weight,
                "ordering_hint": hint,
            },
        )
        return r.json()["id"]

    course = add("Foundations course", {"kind": "course", "course_id": "LD-101"}, 1, 2.0)
    pre = add(
        "Pre self-assessment",
        {"kind": "teacher_self_assessment", "instrument_id": "TSA", "phase": "pre"},
        2,
    )
    observation = add("Classroom observation", {"kind": "observation", "form_id": "OBS-1"}, 3)

    client.put(
        f"/v1/curriculum/activities/{pre}/prerequisites",
        json={"groups": [{"type": "all_of", "prerequisite_ids": [course]}]},
    )
    client.put(
        f"/v1/curriculum/activities/{observation}/prerequisites",
        json={"groups": [{"type": "all_of", "prerequisite_ids": [pre]}]},
    )

    user_id = str(uuid4())
    enrollment = client.post(
        "/v1/curriculum/enrollments", json={"user_id": user_id, "roles": ["lead_teacher"]}
    ).json()
    client.post(
        f"/v1/curriculum/enrollments/{enrollment['id']}/assignments",
        json={"pathway_id": pathway["id"]},
    )

    def show(step: str) -> None:
        body = client.get(f"/v1/progress/enrollments/{enrollment['id']}").json()
        statuses = ", ".join(f"{a['title']}={a['status']}" for a in body["activities"])
        print(f"{step:<34} rollup={body['rollup']['rollup_percent']:>6}%  {statuses}")

    show("1. assigned")

    # ── Signals ────────────────────────────────────────────────────
    client.post(
        "/v1/progress/signals",
        json={"source": "course_progress", "user_id": user_id, "course_id": "LD-101", "percent": 40},
    )
    show("2. course at 40%")

    client.post(
        "/v1/progress/signals",
        json={"source": "course_progress", "user_id": user_id, "course_id": "LD-101", "percent": 100},
    )
    show("3. course complete")

    r = client.get(
        f"/v1/progress/enrollments/{enrollment['id']}/activities/{observation}/lock"
    )
    print(f"4. why is the observation locked?  {r.json()['reason']}")

    client.post(
        "/v1/progress/signals",
        json={
            "source": "assessment_submitted",
            "enrollment_id": enrollment["id"],
            "activity_type": "teacher_self_assessment",
            "instrument_id": "TSA",
            "phase": "pre",
        },
    )
    show("5. pre self-assessment submitted")

    client.put(
        f"/v1/overrides/enrollments/{enrollment['id']}/activities/{observation}",
        json={"type": "exempt", "reason": "observed during onsite visit"},
    )
    show("6. observation exempted")


if __name__ == "__main__":
    main()
