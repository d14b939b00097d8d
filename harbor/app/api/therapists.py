"""
Therapist onboarding profiles, directory search and patient matching.
"""
import logging
from typing import Dict, Any, List

from flask import Blueprint, request, jsonify
from marshmallow import Schema, fields, validate, ValidationError, EXCLUDE
from sqlalchemy import or_, func

from ..models import db, TherapistProfile
from ..utils.auth_adapter import auth_required, auth_optional, current_user_id

therapists_bp = Blueprint('therapists', __name__)
logger = logging.getLogger(__name__)

BROWSE_LIMIT = 20
DEFAULT_MATCH_LIMIT = 5

# Weights for patient matching
SPECIALTY_WEIGHT = 3
LANGUAGE_WEIGHT = 2
LOCATION_WEIGHT = 2
ONLINE_WEIGHT = 1
LGBTQ_WEIGHT = 2


class TherapistProfileSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    full_name = fields.String(required=True, validate=validate.Length(min=1, max=200), data_key="fullName")
    title = fields.String(required=True, validate=validate.Length(min=1, max=120))
    degrees = fields.List(fields.String(), required=True, validate=validate.Length(min=1))
    primary_location = fields.String(required=True, validate=validate.Length(min=1, max=200),
                                     data_key="primaryLocation")
    offers_online = fields.Boolean(load_default=False, data_key="offersOnline")
    phone = fields.String(load_default=None, allow_none=True)
    email = fields.Email(load_default=None, allow_none=True)
    date_of_birth = fields.Date(load_default=None, allow_none=True, data_key="dateOfBirth")
    gender_identity = fields.String(load_default=None, allow_none=True, data_key="genderIdentity")
    years_of_experience = fields.Integer(load_default=None, allow_none=True,
                                         validate=validate.Range(min=0), data_key="yearsOfExperience")
    languages_spoken = fields.List(fields.String(), load_default=list, data_key="languagesSpoken")
    profile_photo_url = fields.String(load_default=None, allow_none=True, data_key="profilePhotoUrl")
    personal_statement = fields.String(load_default=None, allow_none=True, data_key="personalStatement")
    mental_health_specialties = fields.List(fields.String(), load_default=list,
                                            data_key="mentalHealthSpecialties")
    treatment_approaches = fields.List(fields.String(), load_default=list, data_key="treatmentApproaches")
    age_ranges_treated = fields.List(fields.String(), load_default=list, data_key="ageRangesTreated")
    lgbtq_affirming = fields.Boolean(load_default=False, data_key="lgbtqAffirming")
    session_fees = fields.Dict(load_default=None, allow_none=True, data_key="sessionFees")


class MatchRequestSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    specialties = fields.List(fields.String(), load_default=list)
    language = fields.String(load_default=None, allow_none=True)
    location = fields.String(load_default=None, allow_none=True)
    lgbtq_affirming = fields.Boolean(load_default=False, data_key="lgbtqAffirming")
    limit = fields.Integer(load_default=DEFAULT_MATCH_LIMIT, validate=validate.Range(min=1, max=50))


def _lower_all(values) -> List[str]:
    return [str(v).lower() for v in values or []]


def match_score(profile: TherapistProfile, preferences: Dict[str, Any]) -> int:
    """Weighted overlap between a therapist and a patient's preferences."""
    score = 0
    wanted = set(_lower_all(preferences.get('specialties')))
    score += SPECIALTY_WEIGHT * len(wanted & set(_lower_all(profile.mental_health_specialties)))

    language = (preferences.get('language') or '').lower()
    if language and language in _lower_all(profile.languages_spoken):
        score += LANGUAGE_WEIGHT

    location = (preferences.get('location') or '').lower()
    if location:
        if location in (profile.primary_location or '').lower():
            score += LOCATION_WEIGHT
        elif profile.offers_online:
            score += ONLINE_WEIGHT

    if preferences.get('lgbtq_affirming') and profile.lgbtq_affirming:
        score += LGBTQ_WEIGHT
    return score


@therapists_bp.route('/therapist/profile', methods=['POST'])
@auth_required
def save_therapist_profile():
    """Create or update the caller's therapist profile."""
    try:
        data = TherapistProfileSchema().load(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.messages}), 400

    user_id = current_user_id()
    try:
        profile = TherapistProfile.query.filter_by(user_id=user_id).first()
        created = profile is None
        if created:
            profile = TherapistProfile(user_id=user_id)
            db.session.add(profile)

        for field, value in data.items():
            setattr(profile, field, value.strip() if isinstance(value, str) else value)
        profile.completion_status = 'profile_complete'
        db.session.commit()

        logger.info(f"{'Created' if created else 'Updated'} therapist profile for user {user_id}")
        return jsonify({"success": True, "profile": profile.to_dict()}), 201 if created else 200
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error saving therapist profile: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to save therapist profile", "details": str(e)}), 500


@therapists_bp.route('/therapist/profile', methods=['GET'])
@auth_required
def get_therapist_profile():
    try:
        profile = TherapistProfile.query.filter_by(user_id=current_user_id()).first()
        return jsonify({"success": True, "profile": profile.to_dict() if profile else None})
    except Exception as e:
        logger.error(f"Error fetching therapist profile: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to fetch therapist profile", "details": str(e)}), 500


@therapists_bp.route('/therapists/search', methods=['GET'])
@auth_optional
def search_therapists():
    """Search the therapist directory.

    Query params:
        q: Name or location, case-insensitive.
        specialty: Required entry in the therapist's specialties.
        title, gender: Exact matches.
        experience: Minimum years of experience.
        language: Required entry in languages spoken.
        location: Substring of the primary location.
    """
    args = request.args
    q = (args.get('q') or '').strip()
    specialty = args.get('specialty')
    language = args.get('language')
    location = args.get('location')
    try:
        min_experience = int(args['experience']) if args.get('experience') else None
    except ValueError:
        return jsonify({"error": "experience must be an integer"}), 400

    query = TherapistProfile.query.filter(TherapistProfile.completion_status != 'incomplete')
    if q:
        pattern = f"%{q.lower()}%"
        query = query.filter(or_(func.lower(TherapistProfile.full_name).like(pattern),
                                 func.lower(TherapistProfile.primary_location).like(pattern)))
    if location:
        query = query.filter(func.lower(TherapistProfile.primary_location).like(f"%{location.lower()}%"))
    if args.get('title'):
        query = query.filter(TherapistProfile.title == args['title'])
    if args.get('gender'):
        query = query.filter(TherapistProfile.gender_identity == args['gender'])
    if min_experience is not None:
        query = query.filter(TherapistProfile.years_of_experience >= min_experience)

    query = query.order_by(TherapistProfile.created_at.desc())
    browse_mode = not any(args.get(key) for key in
                          ('q', 'specialty', 'title', 'gender', 'experience', 'language', 'location'))
    try:
        profiles = query.limit(BROWSE_LIMIT).all() if browse_mode else query.all()
    except Exception as e:
        logger.error(f"Error searching therapists: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to search therapists", "details": str(e)}), 500

    # List containment is checked here since JSON arrays differ across backends
    if specialty:
        profiles = [p for p in profiles if specialty in (p.mental_health_specialties or [])]
    if language:
        profiles = [p for p in profiles if language in (p.languages_spoken or [])]

    logger.info(f"Therapist search found {len(profiles)} therapists")
    return jsonify({
        "success": True,
        "therapists": [p.to_card() for p in profiles],
        "total": len(profiles)
    })


@therapists_bp.route('/therapists/match', methods=['POST'])
@auth_optional
def match_therapists():
    """Rank therapists against a patient's stated preferences."""
    try:
        preferences = MatchRequestSchema().load(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.messages}), 400

    profiles = TherapistProfile.query.filter(TherapistProfile.completion_status != 'incomplete').all()
    scored = [(match_score(p, preferences), p) for p in profiles]
    scored = [item for item in scored if item[0] > 0]
    scored.sort(key=lambda item: (-item[0], item[1].full_name))

    matches = [{**p.to_card(), "matchScore": score} for score, p in scored[:preferences['limit']]]
    return jsonify({"success": True, "matches": matches, "total": len(matches)})
