"""
Local support resource search backed by Claude's web search tool.
"""
import logging
from typing import Dict, Any, List, Optional

from flask import Blueprint, request, jsonify

from ..utils.auth_adapter import auth_optional
from ..utils.llm_service import llm_service, LLMServiceError

resources_bp = Blueprint('resources', __name__)
logger = logging.getLogger(__name__)

RESOURCE_FIELDS = ['name', 'description', 'resource_type', 'contact', 'phone',
                   'website', 'address', 'hours', 'verified']


def normalize_resource(item: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce an LLM-produced record into the public resource shape."""
    resource = {field: item.get(field) or '' for field in RESOURCE_FIELDS}
    resource['resource_type'] = item.get('resource_type') or item.get('type') or 'other'
    resource['verified'] = bool(item.get('verified', False))
    return resource


def is_usable_resource(resource: Dict[str, Any]) -> bool:
    """Drop placeholders, address-less entries and 211 directory listings."""
    name = resource.get('name', '')
    address = resource.get('address', '')
    if len(name) <= 5 or len(address) <= 10:
        return False
    return '211' not in name and '211' not in resource.get('description', '')


def matches_location(resource: Dict[str, Any], location: Optional[str]) -> bool:
    if not location:
        return True
    needle = location.lower()
    return needle in resource.get('address', '').lower() or needle in resource.get('description', '').lower()


def filter_resources(items: List[Dict[str, Any]], location: Optional[str]) -> List[Dict[str, Any]]:
    resources = [normalize_resource(item) for item in items]
    return [r for r in resources if is_usable_resource(r) and matches_location(r, location)]


@resources_bp.route('/resources/search', methods=['POST'])
@auth_optional
def search_resources():
    """Search the web for support resources.

    Request JSON:
        query: What kind of help is needed (required).
        location: Optional city or region to restrict results to.

    Returns:
        JSON response with the structured resources.
    """
    data = request.get_json(silent=True) or {}
    query = (data.get('query') or '').strip()
    location = (data.get('location') or '').strip() or None
    if not query:
        return jsonify({"error": "Query is required"}), 400

    try:
        raw_results = llm_service.search_resources(query, location)
        resources = filter_resources(llm_service.format_resources(raw_results, location), location)

        logger.info(f"Resource search '{query}' ({location or 'any location'}) returned {len(resources)} results")
        return jsonify({
            "success": True,
            "resources": resources,
            "query": query,
            "location": location
        })
    except LLMServiceError as e:
        logger.error(f"Resource search failed: {str(e)}")
        return jsonify({"error": "Failed to search resources", "details": str(e)}), 500
    except Exception as e:
        logger.error(f"Error searching resources: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to search resources", "details": str(e)}), 500
