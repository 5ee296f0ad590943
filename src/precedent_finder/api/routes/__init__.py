from precedent_finder.api.routes.search import search_bp
from precedent_finder.api.routes.monitoring import monitoring_bp

__all__ = ['search_bp', 'monitoring_bp']
