"""
billing_scheduler -- Recurring invoice-generation scheduler.

Decides once per hour (plus once shortly after startup) which tenants are
due for an automatically generated invoice, defers generation around
weekends per tenant policy, and always moves each processed config's
``next_generation_date`` forward, whether generation succeeded, failed,
or was deferred.

Architecture:
    billing_scheduler/ is a top-level package.  Nothing in billing_kernel
    imports from billing_scheduler.

    domain/    pure types, tenant-local time arithmetic, due selection
    models/    ORM models for generation configs and logs
    services/  repository, invoker, audit recorder, advancer, scheduler,
               log selector, manual generation
    config.py  settings loading
    orchestrator.py  DI container
"""
