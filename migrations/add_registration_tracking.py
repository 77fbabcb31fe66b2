"""
Migration script to add external registration tracking to an existing database

- players.registered / players.verified_at projection columns
- competitions.is_official flag (existing competitions default to official)
- registration_mappings table
- registration_sync_history table (one row per import run)
- backfill of players.registered from existing mappings
"""

import sqlite3
import os

def _database_path() -> str:
    url = os.getenv('DATABASE_URL', 'sqlite:///shotspot.db')
    return url.split(':///', 1)[1] if ':///' in url else url

def run_migration(db_path: str = None):
    """Add registration tracking columns and table, then backfill the flag."""

    db_path = db_path or _database_path()
    conn = sqlite3.connect(db_path)

    try:
        cursor = conn.cursor()

        print("Adding registration fields to players table...")
        cursor.execute("PRAGMA table_info(players)")
        columns = [column[1] for column in cursor.fetchall()]

        if 'registered' not in columns:
            cursor.execute("ALTER TABLE players ADD COLUMN registered BOOLEAN DEFAULT 0 NOT NULL")
            print("Added registered column")

        if 'verified_at' not in columns:
            cursor.execute("ALTER TABLE players ADD COLUMN verified_at DATETIME")
            print("Added verified_at column")

        cursor.execute("CREATE INDEX IF NOT EXISTS ix_players_registered ON players(registered)")

        cursor.execute("PRAGMA table_info(competitions)")
        columns = [column[1] for column in cursor.fetchall()]
        if 'is_official' not in columns:
            cursor.execute("ALTER TABLE competitions ADD COLUMN is_official BOOLEAN DEFAULT 1 NOT NULL")
            print("Added competitions.is_official column")

        print("Creating registration_mappings table...")
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS registration_mappings (
                id INTEGER PRIMARY KEY,
                player_id INTEGER NOT NULL REFERENCES players(id),
                external_id VARCHAR(100) NOT NULL UNIQUE,
                external_name VARCHAR(255),
                sync_status VARCHAR(7) NOT NULL DEFAULT 'PENDING',
                sync_error TEXT,
                last_synced_at DATETIME,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        """)
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS ix_registration_mappings_player_id ON registration_mappings(player_id)"
        )

        print("Creating registration_sync_history table...")
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS registration_sync_history (
                id INTEGER PRIMARY KEY,
                club_id INTEGER NOT NULL REFERENCES clubs(id),
                sync_type VARCHAR(20) NOT NULL DEFAULT 'players',
                sync_direction VARCHAR(10) NOT NULL DEFAULT 'import',
                status VARCHAR(15) NOT NULL DEFAULT 'IN_PROGRESS',
                items_processed INTEGER NOT NULL DEFAULT 0,
                items_succeeded INTEGER NOT NULL DEFAULT 0,
                items_failed INTEGER NOT NULL DEFAULT 0,
                items_removed INTEGER NOT NULL DEFAULT 0,
                error_message TEXT,
                started_at DATETIME NOT NULL,
                completed_at DATETIME
            )
        """)
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS ix_registration_sync_history_club_id ON registration_sync_history(club_id)"
        )

        # Backfill: registered iff a mapping exists
        cursor.execute("""
            UPDATE players
            SET registered = 1,
                verified_at = COALESCE(
                    (SELECT MAX(last_synced_at) FROM registration_mappings m WHERE m.player_id = players.id),
                    CURRENT_TIMESTAMP
                )
            WHERE registered = 0
              AND EXISTS (SELECT 1 FROM registration_mappings m WHERE m.player_id = players.id)
        """)
        print(f"Marked {cursor.rowcount} player(s) as registered")

        cursor.execute("""
            UPDATE players
            SET registered = 0, verified_at = NULL
            WHERE (registered = 1 OR verified_at IS NOT NULL)
              AND NOT EXISTS (SELECT 1 FROM registration_mappings m WHERE m.player_id = players.id)
        """)
        print(f"Cleared registration for {cursor.rowcount} unmapped player(s)")

        conn.commit()
        print("Migration completed successfully!")

    except sqlite3.Error as e:
        print(f"Database error: {e}")
        conn.rollback()
        raise
    finally:
        conn.close()

if __name__ == "__main__":
    run_migration()
