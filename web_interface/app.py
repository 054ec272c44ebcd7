"""
Flask web interface for the Visual Build Core.

Serves the reference, cache and workspace-status API over one in-memory
workspace. Settings come from the environment (see ``CacheConfig``).
"""

import logging
import os
from typing import Optional

from flask import Flask, jsonify
from flask_cors import CORS

from visual_build_core import __version__
from visual_build_core.config import CacheConfig, configure_logging, load_env_file, resolve_setting
from visual_build_core.invalidation import InvalidationCoordinator
from visual_build_core.models import ProgramGraph
from visual_build_core.performance_cache import PerformanceCache
from visual_build_core.reference_manager import ReferenceManager

from web_interface.reference_api import WorkspaceServices, register_reference_api

logger = logging.getLogger(__name__)


def build_services(config: Optional[CacheConfig] = None) -> WorkspaceServices:
    """Wire graph, reference manager, cache and coordinator for one workspace."""
    config = config or CacheConfig.from_env()
    graph = ProgramGraph()
    references = ReferenceManager(graph, default_mode=config.default_mode)
    cache = PerformanceCache(config=config, reference_manager=references)
    coordinator = InvalidationCoordinator(graph, cache)
    return WorkspaceServices(graph=graph, cache=cache, references=references,
                             coordinator=coordinator)


def create_app(config: Optional[CacheConfig] = None,
               services: Optional[WorkspaceServices] = None) -> Flask:
    if config is None:
        load_env_file(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), '.env'))
        config = CacheConfig.from_env()
    configure_logging(config.log_level)

    app = Flask(__name__)
    app.config['SECRET_KEY'] = resolve_setting('VBC_SECRET_KEY', 'visual-build-core-secret-key')
    app.config['BUILD_CORE'] = config.to_dict()
    CORS(app)

    register_reference_api(app, services or build_services(config))

    @app.route('/api/health', methods=['GET'])
    def health():
        return jsonify({'success': True, 'data': {'status': 'ok', 'version': __version__}})

    logger.info(f"Visual Build Core API ready (cache sizes: code={config.code_cache_size}, "
                f"validation={config.validation_cache_size}, policy={config.eviction_policy})")
    return app


if __name__ == '__main__':
    port = int(resolve_setting('VBC_PORT', '5003'))
    print("Starting Visual Build Core Web Interface...")
    print(f"Access the API at: http://localhost:{port}")
    create_app().run(debug=os.environ.get('FLASK_DEBUG') == '1', host='0.0.0.0', port=port)
