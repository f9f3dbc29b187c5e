from playpath.content.catalog import ContentCatalog
from playpath.content.curriculum import default_achievements, default_curriculum, seed_default_content

__all__ = ["ContentCatalog", "default_achievements", "default_curriculum", "seed_default_content"]
