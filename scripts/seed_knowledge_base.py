"""
Seed the merchant knowledge base with common Canadian merchants.

Creates any missing categories/subcategories on the way. Merchants already in
the knowledge base are skipped, so the script can be re-run safely.

Usage:
  python scripts/seed_knowledge_base.py
  python scripts/seed_knowledge_base.py --database-url sqlite:///spendsort.db --with-rule-categories
"""
import argparse
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.abspath('.'))

from spendsort.rules.table import DEFAULT_RULES
from spendsort.storage.database import DATABASE_URL, init_db, make_engine, make_session_factory
from spendsort.storage.repository import SQLKnowledgeRepository
from spendsort.storage.seed_data import SEED_MERCHANTS, display_name, seed_knowledge_base


def main():
    parser = argparse.ArgumentParser(description='Seed the merchant knowledge base')
    parser.add_argument('--database-url', default=DATABASE_URL)
    parser.add_argument('--with-rule-categories', action='store_true',
                        help='also create every category/subcategory referenced by the built-in rules')
    args = parser.parse_args()

    engine = make_engine(args.database_url)
    init_db(engine)
    repository = SQLKnowledgeRepository(make_session_factory(engine=engine))

    if args.with_rule_categories:
        pairs = sorted({(r.category_slug, r.subcategory_slug) for r in DEFAULT_RULES})
        for category, subcategory in pairs:
            repository.ensure_category(category, subcategory, name=display_name(category),
                                       subcategory_name=display_name(subcategory))
        print(f'Ensured {len(pairs)} rule categories')

    print('Seeding merchant knowledge base...')
    counts = seed_knowledge_base(repository)

    print('\nMerchant knowledge base seeding summary:')
    print(f"   Created: {counts['created']}")
    print(f"   Skipped: {counts['skipped']}")
    print(f"   Errors:  {counts['errors']}")
    print(f'   Total:   {len(SEED_MERCHANTS)}')
    return 1 if counts['errors'] else 0


if __name__ == '__main__':
    sys.exit(main())
