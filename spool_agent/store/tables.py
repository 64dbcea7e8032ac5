"""Table definitions for the print-management store.

Column names are lower-case because the PostgreSQL store folds the
unquoted camel-case names it was created with.
"""

from __future__ import annotations

import sqlalchemy as sa

metadata = sa.MetaData()

files = sa.Table(
    "files",
    metadata,
    sa.Column("id", sa.String(64), primary_key=True),
    sa.Column("assetid", sa.String(64), nullable=True),
    sa.Column("filename", sa.Text, nullable=False),
    sa.Column("pages", sa.Integer, nullable=False),
    sa.Column("path", sa.Text, nullable=False),
    sa.Column("createdat", sa.DateTime(timezone=True), nullable=False),
    sa.Column("printed", sa.Boolean, nullable=False, server_default=sa.false()),
    sa.Column("synced", sa.Boolean, nullable=False, server_default=sa.false()),
    sa.Column("deletedat", sa.DateTime(timezone=True), nullable=True),
)

printers = sa.Table(
    "printers",
    metadata,
    sa.Column("id", sa.String(64), primary_key=True),
    sa.Column("name", sa.Text, nullable=False),
    sa.Column("status", sa.Text, nullable=False),
    sa.Column("createdat", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updatedat", sa.DateTime(timezone=True), nullable=False),
    sa.Column("protocol", sa.String(16), nullable=False),
    sa.Column("mac_address", sa.String(32), nullable=True),
    sa.Column("driver", sa.Text, nullable=False),
    sa.Column("uri", sa.Text, nullable=False),
    sa.Column("description", sa.Text, nullable=True),
    sa.Column("location", sa.Text, nullable=True),
    sa.Column("ip_address", sa.String(64), nullable=False),
    sa.Column("port", sa.Integer, nullable=True),
)
