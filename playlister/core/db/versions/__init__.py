"""
Playlister schema migrations.

Each `m_NNN_<name>.py` module defines `change()`, returning the operation
descriptors for that step. Add new steps with the next free NNN; never edit a
migration that has shipped.
"""
