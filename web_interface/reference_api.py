"""
Reference & cache REST API for the Visual Build Core.

Routes:
    GET    /api/references                   all references (?node_id= filters)
    POST   /api/references                   create a reference
    GET    /api/references/<id>              single reference
    PUT    /api/references/<id>              update target / symbol / description
    DELETE /api/references/<id>              delete a reference
    GET    /api/references/node/<node_id>    references declared by a node
    GET    /api/references/imports           import lines per source file
    GET    /api/references/export            serialized reference document
    POST   /api/references/import            bulk import a reference document
    POST   /api/references/clear             drop every reference
    GET    /api/cache/stats                  hit/miss statistics per cache
    POST   /api/cache/invalidate             drop code + validation caches
    GET    /api/workspace/status             dirty flag and content hash
    POST   /api/workspace/load               replace the graph with a workspace document
    GET    /api/workspace/save               serialize the graph and mark it saved
"""

import json
from dataclasses import dataclass
from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request

from visual_build_core.exceptions import MalformedInputError, NotFoundError
from visual_build_core.invalidation import InvalidationCoordinator
from visual_build_core.models import ProgramGraph
from visual_build_core.performance_cache import PerformanceCache
from visual_build_core.reference_manager import UNSET, ReferenceManager

references_bp = Blueprint('references', __name__)

EXTENSION_KEY = 'visual_build_core'


@dataclass
class WorkspaceServices:
    """The build-layer objects one workspace is served by."""
    graph: ProgramGraph
    cache: PerformanceCache
    references: ReferenceManager
    coordinator: InvalidationCoordinator


def _services() -> WorkspaceServices:
    return current_app.extensions[EXTENSION_KEY]


def _json_body() -> Dict[str, Any]:
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise MalformedInputError("Request body must be a JSON object")
    return data


# ─────────────────────────────────────────────────────────────────────
# Error mapping
# ─────────────────────────────────────────────────────────────────────

@references_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return jsonify({'success': False, 'error': str(error)}), 404


@references_bp.errorhandler(MalformedInputError)
def _handle_malformed(error: MalformedInputError):
    return jsonify({'success': False, 'error': str(error), 'details': error.details}), 400


# ─────────────────────────────────────────────────────────────────────
# References
# ─────────────────────────────────────────────────────────────────────

@references_bp.route('/api/references', methods=['GET'])
def list_references():
    manager = _services().references
    node_id = request.args.get('node_id')
    refs = manager.get_references(node_id) if node_id else manager.get_all_references()
    return jsonify({'success': True, 'data': [ref.to_dict() for ref in refs]})


@references_bp.route('/api/references', methods=['POST'])
def create_reference():
    data = _json_body()
    reference = _services().references.create_reference(
        data.get('source_node_id'),
        data.get('target_file'),
        target_mode=data.get('target_mode'),
        target_symbol=data.get('target_symbol'),
        description=data.get('description'),
    )
    return jsonify({'success': True, 'data': reference.to_dict()}), 201


@references_bp.route('/api/references/imports', methods=['GET'])
def get_imports():
    return jsonify({'success': True, 'data': _services().references.generate_imports()})


@references_bp.route('/api/references/export', methods=['GET'])
def export_references():
    return jsonify({'success': True, 'data': _services().references.export_references()})


@references_bp.route('/api/references/import', methods=['POST'])
def import_references():
    data = _json_body()
    manager = _services().references
    count = manager.import_references(data.get('data'))
    return jsonify({
        'success': True,
        'imported': count,
        'report': manager.last_import_report.to_dict(),
    })


@references_bp.route('/api/references/clear', methods=['POST'])
def clear_references():
    _services().references.clear_all()
    return jsonify({'success': True})


@references_bp.route('/api/references/node/<node_id>', methods=['GET'])
def node_references(node_id: str):
    refs = _services().references.get_references(node_id)
    return jsonify({'success': True, 'data': [ref.to_dict() for ref in refs]})


@references_bp.route('/api/references/<reference_id>', methods=['GET'])
def get_reference(reference_id: str):
    reference = _services().references.get_reference(reference_id)
    if reference is None:
        raise NotFoundError(f"Reference not found: {reference_id}", resource_id=reference_id)
    return jsonify({'success': True, 'data': reference.to_dict()})


@references_bp.route('/api/references/<reference_id>', methods=['PUT'])
def update_reference(reference_id: str):
    data = _json_body()
    reference = _services().references.update_reference(
        reference_id,
        new_target=data.get('target_file'),
        target_mode=data.get('target_mode'),
        target_symbol=data['target_symbol'] if 'target_symbol' in data else UNSET,
        description=data['description'] if 'description' in data else UNSET,
    )
    if reference is None:
        raise NotFoundError(f"Reference not found: {reference_id}", resource_id=reference_id)
    return jsonify({'success': True, 'data': reference.to_dict()})


@references_bp.route('/api/references/<reference_id>', methods=['DELETE'])
def delete_reference(reference_id: str):
    if not _services().references.delete_reference(reference_id):
        raise NotFoundError(f"Reference not found: {reference_id}", resource_id=reference_id)
    return jsonify({'success': True})


# ─────────────────────────────────────────────────────────────────────
# Cache & workspace
# ─────────────────────────────────────────────────────────────────────

@references_bp.route('/api/cache/stats', methods=['GET'])
def cache_stats():
    return jsonify({'success': True, 'data': _services().cache.get_stats()})


@references_bp.route('/api/cache/invalidate', methods=['POST'])
def cache_invalidate():
    _services().coordinator.invalidate_all()
    return jsonify({'success': True})


@references_bp.route('/api/workspace/status', methods=['GET'])
def workspace_status():
    services = _services()
    key = services.cache.workspace_key(services.graph)
    return jsonify({
        'success': True,
        'data': {
            'dirty': services.coordinator.has_unsaved_changes(),
            'changed_since_last_save': services.coordinator.has_changed_since_last_save(),
            'node_count': services.graph.node_count,
            'content_hash': key.content_hash,
            'reference_version': key.reference_version,
            'reference_count': services.references.reference_count,
        },
    })


@references_bp.route('/api/workspace/load', methods=['POST'])
def workspace_load():
    """Replace the graph with a workspace document ({'data': text} or the document itself)."""
    data = _json_body()
    text = json.dumps(data) if 'nodes' in data else data.get('data')
    coordinator = _services().coordinator
    coordinator.load(text)
    return jsonify({'success': True, 'data': {'node_count': coordinator.get_node_count()}})


@references_bp.route('/api/workspace/save', methods=['GET'])
def workspace_save():
    return jsonify({'success': True, 'data': _services().coordinator.save()})


def register_reference_api(app, services: WorkspaceServices):
    """Attach workspace services to the app and register the blueprint."""
    app.extensions[EXTENSION_KEY] = services
    app.register_blueprint(references_bp)
