"""
Watch-and-sync engine: retry policy, apply step, hooks, watchers, supervisor.

Import from the submodules directly; ``fsconsul.config`` depends on
``fsconsul.core.retry`` so this package stays import-free.
"""
