"""
Basic usage example for entityquery.
"""

import threading

from entityquery import CachePolicy, EntityDatabase, RegexOption


def main():
    print("=" * 60)
    print("entityquery Basic Usage Example")
    print("=" * 60)

    # 1. Create database
    print("\n1. Creating database...")
    db = EntityDatabase()

    # 2. Add records
    print("2. Adding records...")
    db.store.insert_many("players", [
        {"id": f"p{i:02d}", "name": name, "score": score, "team": team}
        for i, (name, score, team) in enumerate([
            ("Ada", 5, "red"),
            ("Alan", 9, "blue"),
            ("Grace", 9, "red"),
            ("Linus", 3, "blue"),
            ("Margaret", 7, "green"),
        ])
    ])
    print(f"   Total players: {db.store.size('players')}")

    # 3. Simple query
    print("\n3. Top two scores (score >= 5)...")
    query = db.query("players")
    query.where_key_greater_than_or_equal_to("score", 5)
    query.order_descending_by_key("score")
    query.limit = 2

    for player in query.find_all():
        print(f"   {player['name']}: {player['score']}")

    # 4. OR branches
    print("\n4. Red team, or any name starting with 'm'...")
    query = db.query("players")
    query.or_().where_key_equal_to("team", "red")
    query.or_().where_key_matches_regex("name", "^m", RegexOption.CASE_INSENSITIVE)
    query.order_ascending_by_key("name")

    print(f"   {[p['name'] for p in query.find_all()]}")
    print(f"   Count: {query.count_all()}")

    # 5. Cached query
    print("\n5. Cached query...")
    query = db.query("players")
    query.where_key_equal_to("team", "blue")
    query.cache_policy = CachePolicy.CACHE_ELSE_NETWORK
    query.find_all()
    query.find_all()
    print(f"   Cache: {db.cache.stats().to_dict()}")

    # 6. Background query
    print("\n6. Background query...")
    done = threading.Event()

    def on_result(result, error):
        print(f"   Found: {result['name'] if result else None} (error={error})")
        done.set()

    db.query("players").find_by_id_in_background("p02", on_result)
    done.wait(timeout=5)

    # 7. Plan
    print("\n7. Query plan...")
    print(query.compile().explain())

    db.close()
    print("\nDone!")


if __name__ == "__main__":
    main()
