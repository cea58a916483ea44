from importlib import import_module

modules = [
    'activity',
    'trustees',
    'vault',
    'assets',
    'conflicts',
    'sweep',
    'audit',
]

for m in modules:
    import_module(f'.{m}', __name__)

__all__ = modules
