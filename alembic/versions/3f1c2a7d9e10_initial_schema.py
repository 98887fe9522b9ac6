"""initial_schema

Revision ID: 3f1c2a7d9e10
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c2a7d9e10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


CATEGORY_VIEW_SQL = (
    "CREATE VIEW dpl_clview AS "
    "SELECT COALESCE(cl_from, page_id) AS cl_from, "
    "COALESCE(cl_to, '') AS cl_to, cl_sortkey "
    "FROM page LEFT OUTER JOIN categorylinks ON page.page_id = categorylinks.cl_from"
)


def _page_fk(name: str, primary_key: bool = True) -> sa.Column:
    return sa.Column(name, sa.Integer(), sa.ForeignKey('page.page_id', ondelete='CASCADE'),
                     primary_key=primary_key, nullable=False)


def upgrade() -> None:
    op.create_table(
        'namespaces',
        sa.Column('ns_id',      sa.Integer(),            primary_key=True, autoincrement=False),
        sa.Column('name',       sa.String(length=128),   nullable=False),
        sa.Column('is_content', sa.Boolean(),            nullable=False, server_default='0'),
    )
    op.create_index('ix_namespaces_name', 'namespaces', ['name'], unique=True)

    op.create_table(
        'page',
        sa.Column('page_id',          sa.Integer(),          primary_key=True, autoincrement=True),
        sa.Column('page_namespace',   sa.Integer(),          nullable=False, server_default='0'),
        sa.Column('page_title',       sa.String(length=255), nullable=False),
        sa.Column('page_is_redirect', sa.Integer(),          nullable=False, server_default='0'),
        sa.Column('page_touched',     sa.String(length=14),  nullable=False),
        sa.Column('page_latest',      sa.Integer(),          nullable=False, server_default='0'),
        sa.Column('page_len',         sa.Integer(),          nullable=False, server_default='0'),
        sa.UniqueConstraint('page_namespace', 'page_title', name='uq_page_ns_title'),
    )
    op.create_index('ix_page_page_namespace', 'page', ['page_namespace'], unique=False)
    op.create_index('ix_page_page_title',     'page', ['page_title'],     unique=False)

    op.create_table(
        'revision',
        sa.Column('rev_id',         sa.Integer(),          primary_key=True, autoincrement=True),
        _page_fk('rev_page', primary_key=False),
        sa.Column('rev_parent_id',  sa.Integer(),          nullable=False, server_default='0'),
        sa.Column('rev_user',       sa.Integer(),          nullable=False, server_default='0'),
        sa.Column('rev_user_text',  sa.String(length=255), nullable=False, server_default=''),
        sa.Column('rev_comment',    sa.Text(),             nullable=False),
        sa.Column('rev_timestamp',  sa.String(length=14),  nullable=False),
        sa.Column('rev_minor_edit', sa.Integer(),          nullable=False, server_default='0'),
        sa.Column('rev_len',        sa.Integer(),          nullable=False, server_default='0'),
    )
    op.create_index('ix_revision_rev_page',       'revision', ['rev_page'],                  unique=False)
    op.create_index('ix_revision_rev_user_text',  'revision', ['rev_user_text'],             unique=False)
    op.create_index('ix_revision_page_timestamp', 'revision', ['rev_page', 'rev_timestamp'], unique=False)

    op.create_table(
        'categorylinks',
        _page_fk('cl_from'),
        sa.Column('cl_to',        sa.String(length=255), primary_key=True),
        sa.Column('cl_sortkey',   sa.String(length=255), nullable=True),
        sa.Column('cl_timestamp', sa.String(length=14),  nullable=False),
    )
    op.create_index('ix_categorylinks_to_sortkey', 'categorylinks', ['cl_to', 'cl_sortkey'], unique=False)

    op.create_table(
        'pagelinks',
        _page_fk('pl_from'),
        sa.Column('pl_namespace', sa.Integer(),          primary_key=True),
        sa.Column('pl_title',     sa.String(length=255), primary_key=True),
    )
    op.create_index('ix_pagelinks_pl_title', 'pagelinks', ['pl_title'], unique=False)

    op.create_table(
        'templatelinks',
        _page_fk('tl_from'),
        sa.Column('tl_namespace', sa.Integer(),          primary_key=True),
        sa.Column('tl_title',     sa.String(length=255), primary_key=True),
    )
    op.create_index('ix_templatelinks_tl_title', 'templatelinks', ['tl_title'], unique=False)

    op.create_table(
        'imagelinks',
        _page_fk('il_from'),
        sa.Column('il_to', sa.String(length=255), primary_key=True),
    )
    op.create_index('ix_imagelinks_il_to', 'imagelinks', ['il_to'], unique=False)

    op.create_table(
        'externallinks',
        sa.Column('el_id',   sa.Integer(), primary_key=True, autoincrement=True),
        _page_fk('el_from', primary_key=False),
        sa.Column('el_to',   sa.Text(),    nullable=False),
    )
    op.create_index('ix_externallinks_el_from', 'externallinks', ['el_from'], unique=False)

    op.create_table(
        'recentchanges',
        sa.Column('rc_id',        sa.Integer(),          primary_key=True, autoincrement=True),
        sa.Column('rc_cur_id',    sa.Integer(),          nullable=False),
        sa.Column('rc_user_text', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('rc_timestamp', sa.String(length=14),  nullable=False),
        sa.Column('rc_old_len',   sa.Integer(),          nullable=False, server_default='0'),
        sa.Column('rc_new_len',   sa.Integer(),          nullable=False, server_default='0'),
    )
    op.create_index('ix_recentchanges_rc_cur_id', 'recentchanges', ['rc_cur_id'], unique=False)

    op.create_table(
        'hit_counter',
        _page_fk('page_id'),
        sa.Column('page_counter', sa.Integer(), nullable=False, server_default='0'),
    )

    op.execute(CATEGORY_VIEW_SQL)


def downgrade() -> None:
    op.execute("DROP VIEW IF EXISTS dpl_clview")
    op.drop_table('hit_counter')
    op.drop_index('ix_recentchanges_rc_cur_id', table_name='recentchanges')
    op.drop_table('recentchanges')
    op.drop_index('ix_externallinks_el_from', table_name='externallinks')
    op.drop_table('externallinks')
    op.drop_index('ix_imagelinks_il_to', table_name='imagelinks')
    op.drop_table('imagelinks')
    op.drop_index('ix_templatelinks_tl_title', table_name='templatelinks')
    op.drop_table('templatelinks')
    op.drop_index('ix_pagelinks_pl_title', table_name='pagelinks')
    op.drop_table('pagelinks')
    op.drop_index('ix_categorylinks_to_sortkey', table_name='categorylinks')
    op.drop_table('categorylinks')
    op.drop_index('ix_revision_page_timestamp', table_name='revision')
    op.drop_index('ix_revision_rev_user_text', table_name='revision')
    op.drop_index('ix_revision_rev_page', table_name='revision')
    op.drop_table('revision')
    op.drop_index('ix_page_page_title', table_name='page')
    op.drop_index('ix_page_page_namespace', table_name='page')
    op.drop_table('page')
    op.drop_index('ix_namespaces_name', table_name='namespaces')
    op.drop_table('namespaces')
