"""
Community circles: creation, membership, join requests and invite links.
"""
import logging
import re
import secrets
from datetime import timedelta

from flask import Blueprint, request, jsonify
from marshmallow import Schema, fields, validate, ValidationError, EXCLUDE
from sqlalchemy import or_, func

from ..models import (db, Circle, CircleMembership, CircleJoinRequest, CircleAccessLink,
                      AdminNotificationLog, UserProfile, User, utcnow)
from ..utils.auth_adapter import auth_required, auth_optional, current_user_id
from ..utils.notifications import notify_join_request_decision

circles_bp = Blueprint('circles', __name__)
logger = logging.getLogger(__name__)

CIRCLE_NAME_PATTERN = re.compile(r'^[a-z0-9_-]+$')
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 50

SORT_ORDERS = {
    'members': Circle.member_count.desc(),
    'posts': Circle.post_count.desc(),
    'new': Circle.created_at.desc(),
    'name': Circle.display_name.asc(),
}


class CircleSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    name = fields.String(required=True, validate=validate.Length(min=2, max=64))
    display_name = fields.String(required=True, validate=validate.Length(min=1, max=120))
    description = fields.String(load_default=None, allow_none=True)
    icon_url = fields.String(load_default=None, allow_none=True)
    is_private = fields.Boolean(load_default=False)
    requires_approval = fields.Boolean(load_default=False)
    rules = fields.List(fields.String(), load_default=list)


class JoinDecisionSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    request_id = fields.String(required=True, data_key="requestId")
    decision = fields.String(required=True, validate=validate.OneOf(['approved', 'rejected']))
    admin_response = fields.String(load_default=None, allow_none=True, data_key="adminResponse")
    notification_method = fields.String(load_default='email',
                                        validate=validate.OneOf(['email', 'sms', 'both', 'none']),
                                        data_key="notificationMethod")
    admin_notes = fields.String(load_default=None, allow_none=True, data_key="adminNotes")


def _pagination():
    try:
        page = max(1, int(request.args.get('page', 1)))
        limit = min(MAX_PAGE_SIZE, max(1, int(request.args.get('limit', DEFAULT_PAGE_SIZE))))
    except ValueError:
        return None, None
    return page, limit


def _member_circle_ids(user_id):
    return db.session.query(CircleMembership.circle_id).filter(CircleMembership.user_id == user_id)


def _circle_or_404(circle_id):
    circle = db.session.get(Circle, circle_id)
    if circle is None:
        return None, (jsonify({"error": "Circle not found"}), 404)
    return circle, None


@circles_bp.route('/community/circles', methods=['GET'])
@auth_optional
def list_circles():
    """List circles visible to the caller.

    Query params:
        page, limit: Pagination.
        search: Matches name, display name or description.
        sort_by: members, posts, new or name.
        is_private: 'true' or 'false' to filter by visibility.
    """
    page, limit = _pagination()
    if page is None:
        return jsonify({"error": "page and limit must be integers"}), 400

    user_id = current_user_id()
    query = Circle.query
    if user_id:
        query = query.filter(or_(Circle.is_private.is_(False), Circle.id.in_(_member_circle_ids(user_id))))
    else:
        query = query.filter(Circle.is_private.is_(False))

    search = (request.args.get('search') or '').strip()
    if search:
        pattern = f"%{search.lower()}%"
        query = query.filter(or_(func.lower(Circle.name).like(pattern),
                                 func.lower(Circle.display_name).like(pattern),
                                 func.lower(Circle.description).like(pattern)))

    is_private = request.args.get('is_private')
    if is_private in ('true', 'false'):
        query = query.filter(Circle.is_private.is_(is_private == 'true'))

    sort_by = request.args.get('sort_by', 'members')
    try:
        total_count = query.count()
        circles = (query.order_by(SORT_ORDERS.get(sort_by, SORT_ORDERS['members']))
                   .offset((page - 1) * limit).limit(limit).all())

        memberships = {}
        if user_id and circles:
            rows = CircleMembership.query.filter(CircleMembership.user_id == user_id,
                                                 CircleMembership.circle_id.in_([c.id for c in circles])).all()
            memberships = {m.circle_id: m.role for m in rows}
    except Exception as e:
        logger.error(f"Error listing circles: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to fetch circles", "details": str(e)}), 500

    return jsonify({
        "circles": [{**c.to_dict(), "is_member": c.id in memberships, "user_role": memberships.get(c.id)}
                    for c in circles],
        "total_count": total_count,
        "page": page,
        "limit": limit,
        "has_next_page": (page - 1) * limit + limit < total_count
    })


@circles_bp.route('/community/circles', methods=['POST'])
@auth_required
def create_circle():
    """Create a circle; the creator becomes its first admin."""
    raw = request.get_json(silent=True) or {}
    try:
        data = CircleSchema().load(raw)
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.messages}), 400

    name = data['name'].strip()
    if not CIRCLE_NAME_PATTERN.match(name):
        return jsonify({
            "error": "Circle name may only contain lowercase letters, numbers, underscores and hyphens"
        }), 400
    if Circle.query.filter_by(name=name).first():
        return jsonify({"error": "A circle with this name already exists"}), 409

    user_id = current_user_id()
    circle = Circle(
        name=name,
        display_name=data['display_name'].strip(),
        description=data['description'],
        icon_url=data['icon_url'],
        is_private=data['is_private'],
        requires_approval=data['requires_approval'],
        rules=data['rules'],
        is_approved=False,
        member_count=1,
        post_count=0,
        created_by=user_id
    )
    try:
        db.session.add(circle)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating circle {name}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to create circle", "details": str(e)}), 500

    try:
        db.session.add(CircleMembership(circle_id=circle.id, user_id=user_id, role='admin'))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to add creator to circle {circle.id}, removing it: {str(e)}", exc_info=True)
        db.session.delete(circle)
        db.session.commit()
        return jsonify({"error": "Failed to create circle membership", "details": str(e)}), 500

    logger.info(f"User {user_id} created circle {name}")
    return jsonify({"message": "Circle created successfully", "circle": circle.to_dict()}), 201


@circles_bp.route('/community/circles/<circle_id>/join', methods=['POST'])
@auth_required
def join_circle(circle_id):
    circle, error = _circle_or_404(circle_id)
    if error:
        return error

    user_id = current_user_id()
    if circle.membership_for(user_id):
        return jsonify({"error": "Already a member of this circle"}), 409
    if circle.created_by != user_id and (circle.is_private or circle.requires_approval):
        return jsonify({
            "error": "This circle requires approval to join",
            "details": "Submit a join request instead",
            "requires_request": True
        }), 403

    try:
        role = 'admin' if circle.created_by == user_id else 'member'
        membership = CircleMembership(circle_id=circle.id, user_id=user_id, role=role)
        db.session.add(membership)
        circle.adjust('member_count', 1)
        db.session.commit()
        return jsonify({"message": "Joined circle successfully", "membership": membership.to_dict()})
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error joining circle {circle_id}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to join circle", "details": str(e)}), 500


@circles_bp.route('/community/circles/<circle_id>/join', methods=['DELETE'])
@auth_required
def leave_circle(circle_id):
    circle, error = _circle_or_404(circle_id)
    if error:
        return error

    user_id = current_user_id()
    membership = circle.membership_for(user_id)
    if membership is None:
        return jsonify({"error": "Not a member of this circle"}), 404

    if membership.role == 'admin':
        admin_count = circle.memberships.filter_by(role='admin').count()
        if admin_count <= 1:
            return jsonify({
                "error": "You are the only admin of this circle. Assign another admin before leaving."
            }), 400

    try:
        db.session.delete(membership)
        circle.adjust('member_count', -1)
        db.session.commit()
        return jsonify({"message": "Left circle successfully"})
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error leaving circle {circle_id}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to leave circle", "details": str(e)}), 500


@circles_bp.route('/community/circles/<circle_id>/join-request', methods=['GET'])
@auth_required
def get_join_request(circle_id):
    """Status of the caller's request to join a circle."""
    circle, error = _circle_or_404(circle_id)
    if error:
        return error
    join_request = CircleJoinRequest.query.filter_by(circle_id=circle.id, user_id=current_user_id()).first()
    return jsonify({
        "request": join_request.to_dict() if join_request else None,
        "is_member": circle.membership_for(current_user_id()) is not None
    })


@circles_bp.route('/community/circles/<circle_id>/join-request', methods=['POST'])
@auth_required
def submit_join_request(circle_id):
    circle, error = _circle_or_404(circle_id)
    if error:
        return error

    user_id = current_user_id()
    data = request.get_json(silent=True) or {}

    if circle.membership_for(user_id):
        return jsonify({"error": "You are already a member of this circle"}), 400

    access_link = None
    token = data.get('accessToken')
    if token:
        access_link = CircleAccessLink.query.filter_by(token=token, circle_id=circle.id).first()
        if access_link is None or not access_link.usable():
            return jsonify({"error": "Invalid or expired access link"}), 400

    existing = CircleJoinRequest.query.filter_by(circle_id=circle.id, user_id=user_id).first()
    if existing and existing.status == 'pending':
        return jsonify({"error": "You already have a pending request for this circle"}), 400
    if existing and existing.status == 'approved':
        return jsonify({"error": "You are already a member of this circle"}), 400

    try:
        join_request = existing or CircleJoinRequest(circle_id=circle.id, user_id=user_id)
        join_request.status = 'pending'
        join_request.message = data.get('message')
        join_request.notification_email = data.get('notificationEmail')
        join_request.notification_phone = data.get('notificationPhone')
        join_request.access_link_id = access_link.id if access_link else None
        join_request.reviewed_by = None
        join_request.reviewed_at = None
        join_request.admin_response = None
        if existing is None:
            db.session.add(join_request)
        if access_link:
            access_link.usage_count = (access_link.usage_count or 0) + 1
        db.session.commit()

        logger.info(f"User {user_id} requested to join circle {circle.name}")
        return jsonify({"message": "Join request submitted", "request": join_request.to_dict()}), 201
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error submitting join request for circle {circle_id}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to submit join request", "details": str(e)}), 500


@circles_bp.route('/community/circles/<circle_id>/join-requests', methods=['GET'])
@auth_required
def list_join_requests(circle_id):
    """Join requests for circle admins, newest first."""
    circle, error = _circle_or_404(circle_id)
    if error:
        return error
    if not circle.is_admin(current_user_id()):
        return jsonify({"error": "Only circle admins can view join requests"}), 403

    status = request.args.get('status', 'pending')
    query = CircleJoinRequest.query.filter_by(circle_id=circle.id)
    if status != 'all':
        query = query.filter_by(status=status)
    try:
        requests_ = query.order_by(CircleJoinRequest.created_at.desc()).all()

        profiles = {}
        if requests_:
            rows = UserProfile.query.filter(UserProfile.user_id.in_([r.user_id for r in requests_])).all()
            profiles = {p.user_id: p.display_name for p in rows}

        return jsonify({
            "requests": [{**r.to_dict(), "display_name": profiles.get(r.user_id)} for r in requests_]
        })
    except Exception as e:
        logger.error(f"Error listing join requests for circle {circle_id}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to fetch join requests", "details": str(e)}), 500


@circles_bp.route('/community/circles/<circle_id>/join-requests', methods=['PUT'])
@auth_required
def review_join_request(circle_id):
    """Approve or reject a join request and notify the requester."""
    circle, error = _circle_or_404(circle_id)
    if error:
        return error

    admin_id = current_user_id()
    if not circle.is_admin(admin_id):
        return jsonify({"error": "Only circle admins can review join requests"}), 403

    try:
        data = JoinDecisionSchema().load(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.messages}), 400

    join_request = CircleJoinRequest.query.filter_by(id=data['request_id'], circle_id=circle.id).first()
    if join_request is None:
        return jsonify({"error": "Join request not found"}), 404

    try:
        join_request.status = data['decision']
        join_request.reviewed_by = admin_id
        join_request.reviewed_at = utcnow()
        join_request.admin_response = data['admin_response']
        join_request.admin_notes = data['admin_notes']

        if data['decision'] == 'approved' and not circle.membership_for(join_request.user_id):
            db.session.add(CircleMembership(circle_id=circle.id, user_id=join_request.user_id, role='member'))
            circle.adjust('member_count', 1)

        method = data['notification_method']
        if method != 'none':
            db.session.add(AdminNotificationLog(
                join_request_id=join_request.id,
                circle_id=circle.id,
                admin_id=admin_id,
                recipient_user_id=join_request.user_id,
                notification_method=method,
                decision=data['decision'],
                admin_notes=data['admin_notes']
            ))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error reviewing join request {data['request_id']}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to update join request", "details": str(e)}), 500

    if method != 'none':
        requester = db.session.get(User, join_request.user_id)
        email = join_request.notification_email or (requester.email if requester else None)
        try:
            notify_join_request_decision(
                circle.display_name,
                data['decision'],
                admin_response=data['admin_response'],
                email=email if method in ('email', 'both') else None,
                phone=join_request.notification_phone if method in ('sms', 'both') else None
            )
        except Exception as e:
            logger.error(f"Failed to notify user {join_request.user_id} about join request: {str(e)}")

    logger.info(f"Admin {admin_id} {data['decision']} join request {join_request.id} for {circle.name}")
    return jsonify({"message": f"Join request {data['decision']}", "request": join_request.to_dict()})


@circles_bp.route('/community/circles/<circle_id>/access-links', methods=['POST'])
@auth_required
def create_access_link(circle_id):
    """Create an invite link for a circle."""
    circle, error = _circle_or_404(circle_id)
    if error:
        return error
    if not circle.is_admin(current_user_id()):
        return jsonify({"error": "Only circle admins can create access links"}), 403

    data = request.get_json(silent=True) or {}
    try:
        expires_in_hours = data.get('expires_in_hours')
        max_uses = data.get('max_uses')
        link = CircleAccessLink(
            circle_id=circle.id,
            token=secrets.token_urlsafe(24),
            created_by=current_user_id(),
            is_active=True,
            usage_count=0,
            expires_at=utcnow() + timedelta(hours=float(expires_in_hours)) if expires_in_hours else None,
            max_uses=int(max_uses) if max_uses else None
        )
    except (TypeError, ValueError):
        return jsonify({"error": "expires_in_hours and max_uses must be numbers"}), 400

    try:
        db.session.add(link)
        db.session.commit()
        return jsonify({"message": "Access link created", "access_link": link.to_dict()}), 201
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating access link for circle {circle_id}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to create access link", "details": str(e)}), 500
