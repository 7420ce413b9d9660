"""
billing_kernel -- shared infrastructure for the billing services.

Provides structured logging, the typed exception hierarchy, the injectable
clock, and the SQLAlchemy base, engine and ORM models for tenants and
invoice generation.  Nothing in billing_kernel imports from
billing_scheduler.
"""
