from common.utils import to_json_compatible
from core.models import AuditLog


def get_request_id(request):
    return getattr(request, "request_id", None) or request.headers.get("X-Request-ID")


def create_audit_log(
    *,
    actor=None,
    company=None,
    company_id=None,
    action,
    entity,
    entity_id=None,
    before_snapshot=None,
    after_snapshot=None,
    request_id=None,
):
    return AuditLog.objects.create(
        actor=actor,
        company_id=company.id if company is not None else company_id,
        action=action,
        entity=entity,
        entity_id=entity_id,
        before_snapshot=to_json_compatible(before_snapshot),
        after_snapshot=to_json_compatible(after_snapshot),
        request_id=request_id,
    )


def create_audit_log_from_request(
    request,
    *,
    action,
    entity,
    entity_id=None,
    before_snapshot=None,
    after_snapshot=None,
    company_id=None,
):
    user = getattr(request, "user", None)
    actor = user if user is not None and user.is_authenticated else None
    if company_id is None and actor is not None:
        company_id = actor.company_id

    return create_audit_log(
        actor=actor,
        company_id=company_id,
        action=action,
        entity=entity,
        entity_id=entity_id,
        before_snapshot=before_snapshot,
        after_snapshot=after_snapshot,
        request_id=get_request_id(request),
    )
