"""
fintrack - Source Package

The offline-first record store and sync layer of a personal finance
tracker. UI clients (web and mobile) call into this package to read and
mutate transactions, categories, tags, settings and todos, and the
package keeps a remote full-document store in step.

DESIGN PRINCIPLES:
1. Local first: mutations apply synchronously, sync follows
2. The unit of consistency is the whole snapshot
3. Sync failures never destroy local data
4. Dangling references degrade to placeholders, never crash
5. Sync transport is swappable
"""

__version__ = "1.0.0"
__author__ = "fintrack Team"
