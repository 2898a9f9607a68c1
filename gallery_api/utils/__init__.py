"""
Utility functions package.

Modules are imported directly (``gallery_api.utils.security`` etc.); the
package itself stays import-free because the database layer depends on
``prometheus_metrics`` while ``security`` depends on the schemas.
"""
