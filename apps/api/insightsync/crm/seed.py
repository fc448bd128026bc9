from __future__ import annotations

import logging
from datetime import datetime, timedelta

from insightsync.crm.repositories import CRMStore, utcnow


logger = logging.getLogger("insightsync.lifecycle")

_AVATAR = (
    "https://images.unsplash.com/photo-{photo}"
    "?ixlib=rb-1.2.1&ixid=eyJhcHBfaWQiOjEyMDd9&auto=format&fit=facearea&facepad=2&w=256&h=256&q=80"
)
_PICTURE = "https://images.unsplash.com/photo-{photo}?ixlib=rb-1.2.1&auto=format&fit=crop&w=256&h=256&q=80"


class CRMSeedHelper:
    """Loads the demo dataset into an empty store.

    Records go straight into the repositories, so seeding leaves no trace in the
    activity log beyond the activities listed here and publishes no events.
    """

    def seed_if_empty(self, store: CRMStore, *, now: datetime | None = None) -> bool:
        with store.transaction():
            if not store.is_empty():
                return False
            self.seed(store, now=now or utcnow())
        logger.info("crm.seed.completed", extra={"storage_backend": store.backend, "seeded": True})
        return True

    def seed(self, store: CRMStore, *, now: datetime) -> None:
        day = timedelta(days=1)

        for username, password, full_name, role, photo in [
            ("admin", "admin123", "Raj Mehta", "admin", "1472099645785-5658abf4ff4e"),
            ("alisha", "password123", "Alisha Patel", "sales", "1494790108377-be9c29b29330"),
            ("priya", "password123", "Priya Singh", "sales", "1550525811-e5869dd03032"),
            ("arjun", "password123", "Arjun Kapoor", "support", "1500648767791-00dcc994a43e"),
        ]:
            store.users.create(
                {
                    "username": username,
                    "password": password,
                    "full_name": full_name,
                    "email": f"{full_name.lower().replace(' ', '.')}@insightsync.com",
                    "role": role,
                    "avatar_url": _AVATAR.format(photo=photo),
                }
            )

        for order, name in enumerate(["Lead", "Contact", "Proposal", "Negotiation"], start=1):
            store.pipeline_stages.create({"name": name, "order": order, "color": "#3B82F6"})
        store.pipeline_stages.create({"name": "Closed Won", "order": 5, "color": "#22C55E"})

        store.customers.create(
            {
                "name": "TechSolutions Ltd.",
                "company": "TechSolutions Ltd.",
                "email": "contact@techsolutions.com",
                "phone": "+91 9876543210",
                "status": "active",
                "address": "123 Tech Park, Bangalore",
                "avatar_url": _PICTURE.format(photo="1549887552-cb1071d3e5ca"),
                "last_contact": now,
                "churn_risk": 2,
                "total_revenue": 240000,
            }
        )
        store.customers.create(
            {
                "name": "GlobalTrade Inc.",
                "company": "GlobalTrade Inc.",
                "email": "info@globaltrade.com",
                "phone": "+91 9765432109",
                "status": "active",
                "address": "456 Business Hub, Mumbai",
                "avatar_url": _PICTURE.format(photo="1568992687947-868a62a9f521"),
                "last_contact": now - 3 * day,
                "churn_risk": 1,
                "total_revenue": 380000,
            }
        )
        store.customers.create(
            {
                "name": "Innovative Solutions",
                "company": "Innovative Solutions Pvt. Ltd.",
                "email": "support@innovativesol.com",
                "phone": "+91 9654321098",
                "status": "active",
                "address": "789 Innovation Center, Hyderabad",
                "avatar_url": _PICTURE.format(photo="1541746972996-4e0b0f43e02a"),
                "last_contact": now - 7 * day,
                "churn_risk": 4,
                "total_revenue": 120000,
            }
        )
        store.customers.create(
            {
                "name": "Naveen Kumar",
                "company": "InnovateTech Solutions",
                "email": "naveen@innovatetech.com",
                "phone": "+91 9543210987",
                "status": "lead",
                "address": "101 Startup Street, Pune",
                "avatar_url": _PICTURE.format(photo="1531427186611-ecfd6d936c79"),
                "last_contact": now,
                "churn_risk": 0,
                "total_revenue": 0,
            }
        )

        for name, description, price, category, photo in [
            (
                "InsightSync Basic",
                "Entry-level CRM solution for small businesses",
                49900,
                "Software",
                "1551288049-bebda4e38f71",
            ),
            (
                "InsightSync Professional",
                "Advanced CRM with analytics and automation for medium businesses",
                149900,
                "Software",
                "1551434678-e076c223a692",
            ),
            (
                "InsightSync Enterprise",
                "Comprehensive CRM solution for large enterprises with custom integrations",
                299900,
                "Software",
                "1512486130939-2c4f79935e4f",
            ),
            (
                "Implementation Services",
                "Professional setup and configuration service with training",
                75000,
                "Service",
                "1454165804606-c3d57bc86b40",
            ),
            (
                "Premium Support Plan",
                "Priority support with dedicated account manager and 24/7 assistance",
                120000,
                "Support",
                "1560264280-88b68371db39",
            ),
        ]:
            store.products.create(
                {
                    "name": name,
                    "description": description,
                    "price": price,
                    "category": category,
                    "image_url": _PICTURE.format(photo=photo),
                    "inventory": 999,
                    "status": "active",
                }
            )

        for title, customer_id, value, stage_id, owner_id, close_date, probability, status, notes in [
            (
                "TechSolutions CRM Implementation",
                1,
                240000,
                5,
                2,
                now - 2 * day,
                100,
                "won",
                "Successfully implemented InsightSync Professional with custom integrations.",
            ),
            (
                "GlobalTrade Enterprise Deployment",
                2,
                380000,
                3,
                1,
                now + 14 * day,
                60,
                "open",
                "Proposal sent for InsightSync Enterprise solution with Implementation Services.",
            ),
            (
                "Innovative Solutions Support Plan",
                3,
                120000,
                4,
                3,
                now + 7 * day,
                80,
                "open",
                "Discussing Premium Support Plan renewal with additional services.",
            ),
            (
                "InnovateTech Initial Deployment",
                4,
                75000,
                1,
                4,
                now + 30 * day,
                30,
                "open",
                "Initial discussion about implementing InsightSync Basic.",
            ),
        ]:
            store.deals.create(
                {
                    "title": title,
                    "customer_id": customer_id,
                    "value": value,
                    "stage_id": stage_id,
                    "owner_id": owner_id,
                    "expected_close_date": close_date,
                    "probability": probability,
                    "status": status,
                    "notes": notes,
                }
            )

        for title, description, due, status, priority, assigned_to, related_to, related_id in [
            (
                "Follow up with GlobalTrade Inc. about proposal",
                "Send additional information about implementation timeline and integration options",
                now + day,
                "pending",
                "high",
                1,
                "deal",
                2,
            ),
            (
                "Prepare quarterly report for management review",
                "Compile Q3 performance metrics and sales forecasts",
                now + 2 * day,
                "pending",
                "medium",
                1,
                "internal",
                0,
            ),
            (
                "Call Naveen Kumar to discuss requirements",
                "Schedule a demo for InsightSync Basic",
                now + day,
                "pending",
                "medium",
                3,
                "customer",
                4,
            ),
            (
                "Update product catalog with new prices",
                "Apply the Q4 price adjustments to all products",
                now - day,
                "completed",
                "low",
                2,
                "product",
                0,
            ),
            (
                "Schedule team meeting for next sprint planning",
                "Coordinate with all team leads for next week",
                now + 3 * day,
                "pending",
                "low",
                1,
                "internal",
                0,
            ),
        ]:
            store.tasks.create(
                {
                    "title": title,
                    "description": description,
                    "due_date": due,
                    "status": status,
                    "priority": priority,
                    "assigned_to": assigned_to,
                    "related_to": related_to,
                    "related_id": related_id,
                }
            )

        for title, description, customer_id, assigned_to, priority, status, category in [
            (
                "Integration with accounting software not working",
                "Unable to sync invoice data from InsightSync to our accounting system",
                1,
                4,
                "high",
                "open",
                "Integration",
            ),
            (
                "Need additional user licenses",
                "We need to add 5 more users to our account",
                2,
                1,
                "medium",
                "in-progress",
                "Billing",
            ),
            (
                "Data import errors",
                "Getting validation errors when importing customer data from CSV",
                3,
                4,
                "medium",
                "open",
                "Data Import",
            ),
        ]:
            store.tickets.create(
                {
                    "title": title,
                    "description": description,
                    "customer_id": customer_id,
                    "assigned_to": assigned_to,
                    "priority": priority,
                    "status": status,
                    "category": category,
                }
            )

        # User 0 is the system actor.
        for user_id, activity_type, related_to, related_id, description, metadata in [
            (2, "deal_closed", "deal", 1, "Closed a deal with TechSolutions Ltd. worth ₹2.4L", {"dealId": 1, "value": 240000}),
            (1, "proposal_created", "deal", 2, "Created a new proposal for GlobalTrade Inc.", {"dealId": 2}),
            (3, "lead_added", "customer", 4, "Added Naveen Kumar as a new lead", {"customerId": 4}),
            (
                4,
                "demo_scheduled",
                "customer",
                4,
                "Scheduled a demo with InnovateTech Solutions",
                {"customerId": 4, "demoDate": (now + 5 * day).isoformat()},
            ),
            (0, "system_update", "system", 0, "Updated the sales forecast for Q3", {"updateType": "forecast"}),
        ]:
            store.activities.create(
                {
                    "user_id": user_id,
                    "activity_type": activity_type,
                    "related_to": related_to,
                    "related_id": related_id,
                    "description": description,
                    "metadata": metadata,
                }
            )


crm_seed_helper = CRMSeedHelper()
