from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from loopreviews.config import settings
from loopreviews.models import (
    AutomationJob,
    AutomationWorkflow,
    Customer,
    EmailTemplate,
    Review,
    ReviewTemplate,
    SMSTemplate,
)
from loopreviews.services.automation_service import AutomationService
from loopreviews.utils import utcnow


@pytest_asyncio.fixture
async def pro_owner(client, owner, set_plan):
    await set_plan(owner["id"], "pro", "active")
    return owner


async def _email_template(db_session, user_id, trigger="after_purchase", wait_days=0):
    template = EmailTemplate(
        user_id=user_id,
        subject="Thanks {{customerName}}",
        content="Hi {{customerName}}, review {{companyName}} at {{reviewUrl}}",
        initial_trigger=trigger,
        initial_wait_days=wait_days,
    )
    db_session.add(template)
    await db_session.commit()
    await db_session.refresh(template)
    return template


async def _review(db_session, user_id, rating=5, customer_id="cust_1"):
    review = Review(
        user_id=user_id,
        customer_id=customer_id,
        customer_name="Sam Lee",
        customer_email="sam@example.com",
        rating=rating,
        status="published",
    )
    db_session.add(review)
    await db_session.commit()
    await db_session.refresh(review)
    return review


class TestAutomationAccess:
    @pytest.mark.asyncio
    async def test_without_session(self, client):
        response = await client.get("/api/automation/scheduler")
        assert response.status_code == 403
        assert response.json() == {"success": False, "error": "Not authenticated"}

    @pytest.mark.asyncio
    async def test_unknown_session(self, client):
        client.cookies.set("session", "session_1_0_bogus")
        response = await client.get("/api/automation/scheduler")
        assert response.status_code == 403
        assert response.json()["error"] == "Invalid session"

    @pytest.mark.asyncio
    async def test_free_plan_rejected(self, client, owner):
        response = await client.get("/api/automation/scheduler")
        assert response.status_code == 403
        assert response.json()["error"] == "Automation features require Pro or Enterprise subscription"

    @pytest.mark.asyncio
    async def test_inactive_pro_plan_rejected(self, client, owner, set_plan):
        await set_plan(owner["id"], "pro", "canceled")
        response = await client.get("/api/automation/trigger")
        assert response.status_code == 403


class TestScheduler:
    @pytest.mark.asyncio
    async def test_schedule_for_review(self, client, pro_owner, db_session):
        await _email_template(db_session, pro_owner["id"], trigger="after_purchase", wait_days=3)
        db_session.add(SMSTemplate(user_id=pro_owner["id"], content="Hi [Name]"))
        await db_session.commit()
        review = await _review(db_session, pro_owner["id"])

        response = await client.post("/api/automation/scheduler", json={"reviewId": review.id})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["processedJobs"] == 1
        result = data["results"][0]
        assert result["scheduledJobs"][0]["type"] == "email"
        assert result["scheduledJobs"][0]["waitDays"] == 3
        assert result["skipped"] == [{"type": "sms", "error": "No phone number available"}]

    @pytest.mark.asyncio
    async def test_sms_job_when_customer_has_phone(self, client, pro_owner, db_session):
        db_session.add(Customer(id="cust_1", user_id=pro_owner["id"], name="Sam", phone="+15550001111"))
        db_session.add(SMSTemplate(user_id=pro_owner["id"], content="Hi [Name]", initial_trigger="weekly"))
        await db_session.commit()
        review = await _review(db_session, pro_owner["id"])

        response = await client.post("/api/automation/scheduler", json={"reviewId": review.id})
        assert response.json()["data"]["processedJobs"] == 1
        job = (await db_session.execute(select(AutomationJob))).scalar_one()
        assert job.template_type == "sms"
        assert job.customer_phone == "+15550001111"
        assert job.trigger_type == "weekly"

    @pytest.mark.asyncio
    async def test_schedule_for_own_account(self, client, pro_owner, db_session):
        await _email_template(db_session, pro_owner["id"])
        await _review(db_session, pro_owner["id"], customer_id="cust_1")
        await _review(db_session, pro_owner["id"], customer_id="cust_2")

        response = await client.post("/api/automation/scheduler", json={"userId": pro_owner["id"]})
        assert response.json()["data"]["processedJobs"] == 2

        again = await client.post("/api/automation/scheduler", json={"userId": pro_owner["id"]})
        assert again.json()["data"]["processedJobs"] == 0

    @pytest.mark.asyncio
    async def test_other_account_forbidden(self, client, pro_owner):
        response = await client.post("/api/automation/scheduler", json={"userId": pro_owner["id"] + 100})
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_other_tenant_review_not_found(self, client, pro_owner, make_client, signup, db_session):
        other = await make_client()
        other_user = await signup(other, email="other@example.com")
        review = await _review(db_session, other_user["id"])

        response = await client.post("/api/automation/scheduler", json={"reviewId": review.id})
        assert response.status_code == 404
        assert response.json()["error"] == "Review not found"

    @pytest.mark.asyncio
    async def test_requires_target(self, client, pro_owner):
        response = await client.post("/api/automation/scheduler", json={})
        assert response.status_code == 400
        assert response.json()["error"] == "Either userId or reviewId is required"

    @pytest.mark.asyncio
    async def test_list_and_process_pending(self, client, pro_owner, db_session):
        await _email_template(db_session, pro_owner["id"])
        review = await _review(db_session, pro_owner["id"])
        await client.post("/api/automation/scheduler", json={"reviewId": review.id})

        listed = await client.get("/api/automation/scheduler", params={"action": "list_pending"})
        assert listed.json()["data"]["count"] == 1
        assert listed.json()["data"]["pendingJobs"][0]["status"] == "pending"

        processed = await client.get(
            "/api/automation/scheduler", params={"action": "process_pending", "testMode": "true"})
        data = processed.json()["data"]
        assert data["processedJobs"] == 1
        assert data["successfulJobs"] == 1
        assert data["testMode"] is True

        job = (await db_session.execute(select(AutomationJob))).scalar_one()
        assert job.status == "completed"
        assert job.completed_at is not None

        empty = await client.get("/api/automation/scheduler", params={"action": "process_pending"})
        assert empty.json()["data"] == {
            "success": True,
            "message": "No pending automation jobs to process",
            "processedJobs": 0,
        }

    @pytest.mark.asyncio
    async def test_future_jobs_not_processed(self, client, pro_owner, db_session):
        db_session.add(AutomationJob(
            user_id=pro_owner["id"],
            template_type="email",
            customer_email="sam@example.com",
            status="pending",
            scheduled_for=utcnow() + timedelta(days=2),
        ))
        await db_session.commit()

        response = await client.get("/api/automation/scheduler", params={"testMode": "true"})
        assert response.json()["data"]["processedJobs"] == 0

    @pytest.mark.asyncio
    async def test_job_without_email_fails(self, client, pro_owner, db_session):
        template = await _email_template(db_session, pro_owner["id"])
        db_session.add(AutomationJob(
            user_id=pro_owner["id"],
            template_id=template.id,
            template_type="email",
            status="pending",
            scheduled_for=utcnow() - timedelta(minutes=1),
        ))
        await db_session.commit()

        data = (await client.get("/api/automation/scheduler", params={"testMode": "true"})).json()["data"]
        assert data["failedJobs"] == 1
        assert data["results"][0]["error"] == "No customer email available"

    @pytest.mark.asyncio
    async def test_invalid_action(self, client, pro_owner):
        response = await client.get("/api/automation/scheduler", params={"action": "explode"})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid action"


async def _due_job(db_session, user_id, minutes_ago, **values):
    job = AutomationJob(
        user_id=user_id,
        template_type="email",
        customer_email="sam@example.com",
        status="pending",
        scheduled_for=utcnow() - timedelta(minutes=minutes_ago),
        **values,
    )
    db_session.add(job)
    await db_session.commit()
    await db_session.refresh(job)
    return job


async def _statuses(db_session):
    rows = await db_session.execute(select(AutomationJob.id, AutomationJob.status))
    return dict(rows.all())


class TestProcessPending:
    @pytest.mark.asyncio
    async def test_oldest_first_within_batch(self, pro_owner, db_session, monkeypatch):
        newest = await _due_job(db_session, pro_owner["id"], 10)
        oldest = await _due_job(db_session, pro_owner["id"], 180)
        middle = await _due_job(db_session, pro_owner["id"], 60)
        future = await _due_job(db_session, pro_owner["id"], -60)
        sent = []

        async def fake_email_job(db, job, test_mode=False):
            sent.append(job.id)
            return {"success": True}

        monkeypatch.setattr(settings, "automation_batch_size", 2)
        monkeypatch.setattr(AutomationService, "process_email_job", fake_email_job)
        result = await AutomationService.process_pending(db_session, test_mode=True)

        assert sent == [oldest.id, middle.id]
        assert [r["jobId"] for r in result["results"]] == [oldest.id, middle.id]
        statuses = await _statuses(db_session)
        assert statuses[oldest.id] == statuses[middle.id] == "completed"
        assert statuses[newest.id] == statuses[future.id] == "pending"

    @pytest.mark.asyncio
    async def test_job_claimed_elsewhere_is_skipped(self, pro_owner, db_session, monkeypatch):
        first = await _due_job(db_session, pro_owner["id"], 30)
        second = await _due_job(db_session, pro_owner["id"], 20)
        sent = []

        async def fake_email_job(db, job, test_mode=False):
            sent.append(job.id)
            # Another worker grabs the next job meanwhile
            await db.execute(
                update(AutomationJob).where(AutomationJob.id == second.id).values(status="processing"))
            await db.commit()
            return {"success": True}

        monkeypatch.setattr(AutomationService, "process_email_job", fake_email_job)
        result = await AutomationService.process_pending(db_session, test_mode=True)

        assert sent == [first.id]
        assert result["processedJobs"] == 1
        statuses = await _statuses(db_session)
        assert statuses[first.id] == "completed"
        assert statuses[second.id] == "processing"

    @pytest.mark.asyncio
    async def test_database_error_rolls_back_and_marks_failed(self, pro_owner, db_session, monkeypatch):
        broken_id = (await _due_job(db_session, pro_owner["id"], 30)).id
        healthy_id = (await _due_job(db_session, pro_owner["id"], 20)).id

        async def fake_email_job(db, job, test_mode=False):
            if job.id == broken_id:
                db.add(AutomationJob(
                    user_id=job.user_id, template_type="sms", status="pending", scheduled_for=utcnow()))
                raise SQLAlchemyError("database is locked")
            return {"success": True}

        monkeypatch.setattr(AutomationService, "process_email_job", fake_email_job)
        result = await AutomationService.process_pending(db_session, test_mode=True)

        assert [(r["jobId"], r["success"]) for r in result["results"]] == [
            (broken_id, False), (healthy_id, True)]
        statuses = await _statuses(db_session)
        assert statuses == {broken_id: "failed", healthy_id: "completed"}
        error = (await db_session.execute(
            select(AutomationJob.error_message).where(AutomationJob.id == broken_id))).scalar_one()
        assert error == "database is locked"


class TestStarSelectionScheduling:
    @pytest.mark.asyncio
    async def test_pro_owner_gets_follow_up_job(self, client, pro_owner, review_url_id, db_session):
        await _email_template(db_session, pro_owner["id"], trigger="immediate")
        slug = await review_url_id(client)

        await client.post(
            "/api/track-click",
            json={"customer_id": "cust_5", "event_type": "star_selection", "star_rating": 5, "page": f"/r/{slug}"},
        )
        job = (await db_session.execute(select(AutomationJob))).scalar_one()
        assert job.template_type == "email"
        assert job.trigger_type == "immediate"

    @pytest.mark.asyncio
    async def test_free_owner_gets_none(self, client, owner, review_url_id, db_session):
        await _email_template(db_session, owner["id"])
        slug = await review_url_id(client)

        await client.post(
            "/api/track-click",
            json={"customer_id": "cust_5", "event_type": "star_selection", "star_rating": 5, "page": f"/r/{slug}"},
        )
        assert (await db_session.execute(select(AutomationJob))).scalars().all() == []


class TestWorkflowTrigger:
    async def _workflow(self, db_session, user_id, trigger_event="positive_review", delay_days=0):
        template = ReviewTemplate(
            user_id=user_id,
            name="Thank you",
            subject="Thanks for {{rating}} stars, {{customerName}}",
            body="We appreciate it, {{customerName}}!",
            template_type="email",
        )
        db_session.add(template)
        await db_session.flush()
        workflow = AutomationWorkflow(
            user_id=user_id,
            name="Happy customers",
            trigger_event=trigger_event,
            delay_days=delay_days,
            email_template_id=template.id,
            is_active=True,
        )
        db_session.add(workflow)
        await db_session.commit()
        return workflow

    @pytest.mark.asyncio
    async def test_trigger_for_review_in_test_mode(self, client, pro_owner, db_session):
        await self._workflow(db_session, pro_owner["id"])
        review = await _review(db_session, pro_owner["id"], rating=5)

        response = await client.post(
            "/api/automation/trigger", json={"reviewId": review.id, "testMode": True})
        data = response.json()["data"]
        assert data["processedWorkflows"] == 1
        assert data["testMode"] is True
        outcome = data["results"][0]["workflows"][0]
        assert outcome["recipient"] == "sam@example.com"
        assert outcome["subject"] == "Thanks for 5 stars, Sam Lee"

    @pytest.mark.asyncio
    async def test_delayed_workflow_reported_as_scheduled(self, client, pro_owner, db_session):
        await self._workflow(db_session, pro_owner["id"], delay_days=2)
        review = await _review(db_session, pro_owner["id"], rating=4)

        response = await client.post("/api/automation/trigger", json={"reviewId": review.id})
        result = response.json()["data"]["results"][0]
        assert result["workflowsTriggered"] == 0
        assert result["workflows"][0]["status"] == "scheduled"

    @pytest.mark.asyncio
    async def test_rating_class_mismatch(self, client, pro_owner, db_session):
        await self._workflow(db_session, pro_owner["id"], trigger_event="negative_review")
        review = await _review(db_session, pro_owner["id"], rating=5)

        response = await client.post(
            "/api/automation/trigger", json={"reviewId": review.id, "testMode": True})
        assert response.json()["data"]["processedWorkflows"] == 0

    @pytest.mark.asyncio
    async def test_trigger_by_event_type(self, client, pro_owner, db_session):
        await self._workflow(db_session, pro_owner["id"])
        await _review(db_session, pro_owner["id"], rating=5, customer_id="cust_1")
        await _review(db_session, pro_owner["id"], rating=1, customer_id="cust_2")

        response = await client.post(
            "/api/automation/trigger", json={"eventType": "positive_review", "testMode": True})
        result = response.json()["data"]["results"][0]
        assert result["reviewsMatched"] == 1
        assert result["workflowsTriggered"] == 1

    @pytest.mark.asyncio
    async def test_invalid_event_type(self, client, pro_owner):
        response = await client.post("/api/automation/trigger", json={"eventType": "ecstatic_review"})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid eventType"

    @pytest.mark.asyncio
    async def test_requires_review_or_event(self, client, pro_owner):
        response = await client.post("/api/automation/trigger", json={})
        assert response.status_code == 400
        assert response.json()["error"] == "Either reviewId or eventType is required"

    @pytest.mark.asyncio
    async def test_pending_counts(self, client, pro_owner, db_session):
        await _email_template(db_session, pro_owner["id"], wait_days=5)
        positive = await _review(db_session, pro_owner["id"], rating=5, customer_id="cust_1")
        negative = await _review(db_session, pro_owner["id"], rating=1, customer_id="cust_2")
        for review in (positive, negative):
            await client.post("/api/automation/scheduler", json={"reviewId": review.id})

        everything = await client.get("/api/automation/trigger")
        assert everything.json()["data"] == {"pendingAutomations": 2, "eventType": "all"}

        negative_only = await client.get("/api/automation/trigger", params={"eventType": "negative_review"})
        assert negative_only.json()["data"]["pendingAutomations"] == 1
