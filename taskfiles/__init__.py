# Kanban task files: tasks as files in column folders, plus a long-poll change feed
#
# Components:
#   schema.py   - Data model (Task, BoardColumn, BoardConfig, reconciliation types)
#   errors.py   - Error taxonomy
#   taskfile.py - Task file codec, slugs, timestamps, atomic writes
#   board.py    - Board config file, validation and folder reconciliation
#   store.py    - Task CRUD and moves over the folder tree
#   events.py   - Change feed (version counter + long-poll wait)
#   facade.py   - Mutation lock + sequencing used by the HTTP layer
#   watcher.py  - watchdog-based detection of edits made outside the server
#   theme.py    - Theme file for the web UI
#   config.py   - YAML/env configuration
