import json
import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional
from config import DATABASE_PATH, DATABASE_TIMEOUT, DEFAULT_USERS, SEED_DEFAULT_USERS
from catalog import PERMISSIONS, ROLES, ROLE_PERMISSIONS
from security import hash_password

logger = logging.getLogger(__name__)

SCHEMA = [
    '''
    CREATE TABLE IF NOT EXISTS permissions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT UNIQUE NOT NULL,
        description TEXT,
        category TEXT NOT NULL
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS roles (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT UNIQUE NOT NULL,
        description TEXT
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS role_permissions (
        role_id INTEGER NOT NULL,
        permission_id INTEGER NOT NULL,
        PRIMARY KEY (role_id, permission_id),
        FOREIGN KEY (role_id) REFERENCES roles(id),
        FOREIGN KEY (permission_id) REFERENCES permissions(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT UNIQUE NOT NULL,
        password_hash TEXT NOT NULL,
        role TEXT NOT NULL,
        first_name TEXT,
        last_name TEXT,
        email TEXT,
        is_active INTEGER NOT NULL DEFAULT 1,
        token_version INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS user_disabled_permissions (
        user_id INTEGER NOT NULL,
        permission_name TEXT NOT NULL,
        PRIMARY KEY (user_id, permission_name),
        FOREIGN KEY (user_id) REFERENCES users(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS patients (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER UNIQUE NOT NULL,
        date_of_birth TEXT,
        gender TEXT,
        blood_type TEXT,
        allergies TEXT NOT NULL DEFAULT '[]',
        medical_history TEXT NOT NULL DEFAULT '[]',
        assigned_doctor_id INTEGER,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP,
        FOREIGN KEY (user_id) REFERENCES users(id),
        FOREIGN KEY (assigned_doctor_id) REFERENCES users(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS appointments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        patient_id INTEGER NOT NULL,
        doctor_id INTEGER NOT NULL,
        date_time TEXT NOT NULL,
        duration INTEGER NOT NULL DEFAULT 30,
        reason TEXT NOT NULL,
        notes TEXT,
        status TEXT NOT NULL DEFAULT 'scheduled',
        created_by INTEGER,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP,
        FOREIGN KEY (patient_id) REFERENCES users(id),
        FOREIGN KEY (doctor_id) REFERENCES users(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS consultations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        appointment_id INTEGER,
        patient_id INTEGER NOT NULL,
        doctor_id INTEGER NOT NULL,
        consultation_date TEXT NOT NULL,
        consultation_type TEXT NOT NULL,
        chief_complaint TEXT NOT NULL,
        treatment_plan TEXT,
        vital_signs TEXT NOT NULL DEFAULT '{}',
        diagnoses TEXT NOT NULL DEFAULT '[]',
        status TEXT NOT NULL DEFAULT 'draft',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP,
        FOREIGN KEY (patient_id) REFERENCES users(id),
        FOREIGN KEY (doctor_id) REFERENCES users(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS pharmacies (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        license_number TEXT UNIQUE NOT NULL,
        address TEXT NOT NULL DEFAULT '{}',
        contacts TEXT NOT NULL DEFAULT '[]',
        type TEXT NOT NULL DEFAULT 'community',
        is_active INTEGER NOT NULL DEFAULT 1,
        partnership_status TEXT NOT NULL DEFAULT 'active',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS prescriptions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        prescription_number TEXT UNIQUE,
        patient_id INTEGER NOT NULL,
        doctor_id INTEGER NOT NULL,
        consultation_id INTEGER,
        pharmacy_id INTEGER,
        medications TEXT NOT NULL DEFAULT '[]',
        diagnosis TEXT,
        notes TEXT,
        priority TEXT NOT NULL DEFAULT 'routine',
        status TEXT NOT NULL DEFAULT 'draft',
        signed_by INTEGER,
        signed_at TEXT,
        cancellation_reason TEXT,
        renewed_from INTEGER,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP,
        FOREIGN KEY (patient_id) REFERENCES users(id),
        FOREIGN KEY (doctor_id) REFERENCES users(id),
        FOREIGN KEY (pharmacy_id) REFERENCES pharmacies(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS lab_orders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_number TEXT UNIQUE,
        patient_id INTEGER NOT NULL,
        doctor_id INTEGER NOT NULL,
        consultation_id INTEGER,
        tests TEXT NOT NULL DEFAULT '[]',
        clinical_notes TEXT,
        priority TEXT NOT NULL DEFAULT 'routine',
        status TEXT NOT NULL DEFAULT 'ordered',
        collected_by INTEGER,
        collected_at TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP,
        FOREIGN KEY (patient_id) REFERENCES users(id),
        FOREIGN KEY (doctor_id) REFERENCES users(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS lab_results (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        lab_order_id INTEGER NOT NULL,
        patient_id INTEGER NOT NULL,
        doctor_id INTEGER NOT NULL,
        test_results TEXT NOT NULL DEFAULT '[]',
        report_summary TEXT,
        has_critical_results INTEGER NOT NULL DEFAULT 0,
        status TEXT NOT NULL DEFAULT 'preliminary',
        validated_by INTEGER,
        validated_at TEXT,
        report_document TEXT,
        result_date TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP,
        FOREIGN KEY (lab_order_id) REFERENCES lab_orders(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS documents (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT,
        category TEXT NOT NULL,
        patient_id INTEGER NOT NULL,
        uploaded_by INTEGER NOT NULL,
        file_name TEXT NOT NULL,
        mime_type TEXT NOT NULL,
        size INTEGER NOT NULL,
        checksum TEXT NOT NULL,
        content BLOB NOT NULL,
        tags TEXT NOT NULL DEFAULT '[]',
        is_confidential INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP,
        FOREIGN KEY (patient_id) REFERENCES users(id),
        FOREIGN KEY (uploaded_by) REFERENCES users(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS document_shares (
        document_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        shared_by INTEGER NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (document_id, user_id),
        FOREIGN KEY (document_id) REFERENCES documents(id)
    )
    ''',
]

# Columns holding JSON text, decoded on read
JSON_COLUMNS = {
    "patients": {"allergies", "medical_history"},
    "appointments": set(),
    "consultations": {"vital_signs", "diagnoses"},
    "pharmacies": {"address", "contacts"},
    "prescriptions": {"medications"},
    "lab_orders": {"tests"},
    "lab_results": {"test_results", "report_document"},
    "documents": {"tags"},
}

BOOL_COLUMNS = {"is_active", "has_critical_results", "is_confidential"}


def init_database():
    """Initialize SQLite database with tables and seed data"""
    conn = sqlite3.connect(DATABASE_PATH)
    try:
        cursor = conn.cursor()
        for statement in SCHEMA:
            cursor.execute(statement)
        conn.commit()

        seed_roles_and_permissions(conn)
        if SEED_DEFAULT_USERS:
            seed_default_users(conn)
    finally:
        conn.close()
    logger.info("Database initialised at %s", DATABASE_PATH)


def seed_roles_and_permissions(conn: sqlite3.Connection):
    """Insert the static permission and role tables once.

    Skips entirely if any permission row already exists. A role whose mapped
    permissions resolve to nothing aborts the seed and rolls it back.
    """
    cursor = conn.cursor()
    cursor.execute("SELECT COUNT(*) FROM permissions")
    if cursor.fetchone()[0] > 0:
        logger.info("Roles and permissions already seeded, skipping...")
        return

    try:
        permission_ids = {}
        for permission in PERMISSIONS:
            cursor.execute('''
                INSERT INTO permissions (name, description, category)
                VALUES (?, ?, ?)
            ''', (permission["name"], permission["description"], permission["category"]))
            permission_ids[permission["name"]] = cursor.lastrowid

        for role in ROLES:
            role_permission_ids = [
                permission_ids[name]
                for name in ROLE_PERMISSIONS.get(role["name"], [])
                if name in permission_ids
            ]
            if not role_permission_ids:
                raise RuntimeError(f"No valid permissions found for role: {role['name']}")

            cursor.execute(
                "INSERT INTO roles (name, description) VALUES (?, ?)",
                (role["name"], role["description"])
            )
            role_id = cursor.lastrowid
            cursor.executemany(
                "INSERT INTO role_permissions (role_id, permission_id) VALUES (?, ?)",
                [(role_id, permission_id) for permission_id in role_permission_ids]
            )

        conn.commit()
    except Exception:
        conn.rollback()
        logger.exception("Error seeding roles and permissions")
        raise

    logger.info("Seeded %d permissions and %d roles successfully", len(PERMISSIONS), len(ROLES))


def seed_default_users(conn: sqlite3.Connection):
    """Insert one account per role if missing"""
    cursor = conn.cursor()
    for username, password, role, first_name, last_name in DEFAULT_USERS:
        cursor.execute('''
            INSERT OR IGNORE INTO users (username, password_hash, role, first_name, last_name)
            VALUES (?, ?, ?, ?, ?)
        ''', (username, hash_password(password), role, first_name, last_name))
        if role == "patient":
            cursor.execute('''
                INSERT OR IGNORE INTO patients (user_id)
                SELECT id FROM users WHERE username = ?
            ''', (username,))
    conn.commit()


@contextmanager
def get_db():
    """Database connection context manager"""
    conn = sqlite3.connect(DATABASE_PATH, timeout=DATABASE_TIMEOUT)
    conn.row_factory = sqlite3.Row  # Enable dict-like access
    try:
        yield conn
    finally:
        conn.close()


# Users

def _user_dict(row) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    user = dict(row)
    user["is_active"] = bool(user["is_active"])
    return user


def get_user_by_username(username: str):
    """Get user by username from database"""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM users WHERE username = ?", (username,))
        return _user_dict(cursor.fetchone())


def get_user_by_id(user_id: int):
    """Get user by ID from database"""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        return _user_dict(cursor.fetchone())


def create_user(username: str, password_hash: str, role: str, first_name: str = None,
                last_name: str = None, email: str = None) -> int:
    """Create a new user; raises sqlite3.IntegrityError on duplicate username"""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO users (username, password_hash, role, first_name, last_name, email)
            VALUES (?, ?, ?, ?, ?, ?)
        ''', (username, password_hash, role, first_name, last_name, email))
        new_id = cursor.lastrowid
        if role == "patient":
            cursor.execute("INSERT INTO patients (user_id) VALUES (?)", (new_id,))
        conn.commit()
        return new_id


def list_users(role: str = None) -> List[Dict[str, Any]]:
    with get_db() as conn:
        cursor = conn.cursor()
        if role:
            cursor.execute("SELECT * FROM users WHERE role = ? ORDER BY id", (role,))
        else:
            cursor.execute("SELECT * FROM users ORDER BY id")
        return [_user_dict(row) for row in cursor.fetchall()]


def update_user_role(user_id: int, role: str):
    """Change a user's role and revoke outstanding refresh tokens"""
    with get_db() as conn:
        conn.execute(
            "UPDATE users SET role = ?, token_version = token_version + 1 WHERE id = ?",
            (role, user_id)
        )
        conn.commit()


def set_user_active(user_id: int, is_active: bool):
    with get_db() as conn:
        conn.execute(
            "UPDATE users SET is_active = ?, token_version = token_version + 1 WHERE id = ?",
            (1 if is_active else 0, user_id)
        )
        conn.commit()


def update_user_password(user_id: int, password_hash: str):
    """Store a new password hash and revoke outstanding refresh tokens"""
    with get_db() as conn:
        conn.execute(
            "UPDATE users SET password_hash = ?, token_version = token_version + 1 WHERE id = ?",
            (password_hash, user_id)
        )
        conn.commit()


def bump_token_version(user_id: int):
    with get_db() as conn:
        conn.execute("UPDATE users SET token_version = token_version + 1 WHERE id = ?", (user_id,))
        conn.commit()


# Roles and permissions

def list_permissions(category: str = None) -> List[Dict[str, Any]]:
    with get_db() as conn:
        cursor = conn.cursor()
        if category:
            cursor.execute(
                "SELECT name, description, category FROM permissions WHERE category = ? ORDER BY id",
                (category,)
            )
        else:
            cursor.execute("SELECT name, description, category FROM permissions ORDER BY id")
        return [dict(row) for row in cursor.fetchall()]


def get_role_permissions(role: str) -> List[Dict[str, Any]]:
    """Permissions attached to a role in the seeded tables"""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT p.name, p.description, p.category
            FROM roles r
            JOIN role_permissions rp ON rp.role_id = r.id
            JOIN permissions p ON p.id = rp.permission_id
            WHERE r.name = ?
            ORDER BY p.id
        ''', (role,))
        return [dict(row) for row in cursor.fetchall()]


def get_role(name: str) -> Optional[Dict[str, Any]]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT name, description FROM roles WHERE name = ?", (name,))
        row = cursor.fetchone()
    if row is None:
        return None
    role = dict(row)
    role["permissions"] = get_role_permissions(name)
    return role


def list_roles() -> List[Dict[str, Any]]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT name FROM roles ORDER BY id")
        names = [row["name"] for row in cursor.fetchall()]
    return [get_role(name) for name in names]


def get_disabled_permissions(user_id: int) -> List[Dict[str, Any]]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT p.name, p.description, p.category
            FROM user_disabled_permissions d
            JOIN permissions p ON p.name = d.permission_name
            WHERE d.user_id = ?
            ORDER BY p.id
        ''', (user_id,))
        return [dict(row) for row in cursor.fetchall()]


def set_disabled_permissions(user_id: int, permission_names: Iterable[str]):
    """Replace a user's permission deny list"""
    with get_db() as conn:
        conn.execute("DELETE FROM user_disabled_permissions WHERE user_id = ?", (user_id,))
        conn.executemany(
            "INSERT OR IGNORE INTO user_disabled_permissions (user_id, permission_name) VALUES (?, ?)",
            [(user_id, name) for name in permission_names]
        )
        conn.commit()


def get_effective_permissions(user: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Role permissions minus the user's disabled permissions"""
    disabled = {p["name"] for p in get_disabled_permissions(user["id"])}
    return [p for p in get_role_permissions(user["role"]) if p["name"] not in disabled]


# Clinical records

def _row_dict(table: str, row) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    record = dict(row)
    for column in JSON_COLUMNS[table]:
        if record.get(column) is not None:
            record[column] = json.loads(record[column])
    for column in BOOL_COLUMNS & record.keys():
        record[column] = bool(record[column])
    return record


def _encode(table: str, values: Dict[str, Any]) -> Dict[str, Any]:
    encoded = {}
    for column, value in values.items():
        if column in JSON_COLUMNS[table] and value is not None:
            value = json.dumps(value)
        elif isinstance(value, bool):
            value = 1 if value else 0
        encoded[column] = value
    return encoded


def _check_table(table: str):
    if table not in JSON_COLUMNS:
        raise ValueError(f"Unknown table: {table}")


def insert_row(table: str, values: Dict[str, Any]) -> Dict[str, Any]:
    """Insert a record and return it as stored"""
    _check_table(table)
    encoded = _encode(table, values)
    columns = ", ".join(encoded)
    placeholders = ", ".join("?" for _ in encoded)
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            tuple(encoded.values())
        )
        row_id = cursor.lastrowid
        conn.commit()
        cursor.execute(f"SELECT * FROM {table} WHERE id = ?", (row_id,))
        return _row_dict(table, cursor.fetchone())


def insert_numbered_row(table: str, values: Dict[str, Any], number_column: str, prefix: str) -> Dict[str, Any]:
    """Insert a record and set ``number_column`` to ``{prefix}-{id:04d}``.

    Both statements run in one write transaction, so concurrent inserts
    never share a number.
    """
    _check_table(table)
    encoded = _encode(table, values)
    columns = ", ".join(encoded)
    placeholders = ", ".join("?" for _ in encoded)
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("BEGIN IMMEDIATE")
        try:
            cursor.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                tuple(encoded.values())
            )
            row_id = cursor.lastrowid
            cursor.execute(
                f"UPDATE {table} SET {number_column} = ? WHERE id = ?",
                (f"{prefix}-{row_id:04d}", row_id)
            )
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise
        cursor.execute(f"SELECT * FROM {table} WHERE id = ?", (row_id,))
        return _row_dict(table, cursor.fetchone())


def get_row(table: str, row_id: int) -> Optional[Dict[str, Any]]:
    _check_table(table)
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(f"SELECT * FROM {table} WHERE id = ?", (row_id,))
        return _row_dict(table, cursor.fetchone())


def find_row(table: str, **filters) -> Optional[Dict[str, Any]]:
    rows = list_rows(table, filters=filters)
    return rows[0] if rows else None


def list_rows(table: str, filters: Dict[str, Any] = None, any_of: Dict[str, Any] = None) -> List[Dict[str, Any]]:
    """List records matching every ``filters`` equality and at least one ``any_of`` equality"""
    _check_table(table)
    clauses = []
    params: List[Any] = []
    for column, value in (filters or {}).items():
        clauses.append(f"{column} = ?")
        params.append(value)
    if any_of:
        clauses.append("(" + " OR ".join(f"{column} = ?" for column in any_of) + ")")
        params.extend(any_of.values())
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(f"SELECT * FROM {table}{where} ORDER BY id", tuple(params))
        return [_row_dict(table, row) for row in cursor.fetchall()]


def update_row(table: str, row_id: int, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Update the given columns and return the updated record"""
    _check_table(table)
    if values:
        encoded = _encode(table, values)
        assignments = ", ".join(f"{column} = ?" for column in encoded)
        with get_db() as conn:
            conn.execute(
                f"UPDATE {table} SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (*encoded.values(), row_id)
            )
            conn.commit()
    return get_row(table, row_id)


def delete_row(table: str, row_id: int) -> bool:
    _check_table(table)
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))
        if table == "documents":
            cursor.execute("DELETE FROM document_shares WHERE document_id = ?", (row_id,))
        conn.commit()
        return cursor.rowcount > 0


# Documents

def list_visible_documents(user_id: int) -> List[Dict[str, Any]]:
    """Documents about the user, uploaded by the user, or shared with the user"""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute('''
            SELECT * FROM documents
            WHERE patient_id = ? OR uploaded_by = ?
               OR id IN (SELECT document_id FROM document_shares WHERE user_id = ?)
            ORDER BY id
        ''', (user_id, user_id, user_id))
        return [_row_dict("documents", row) for row in cursor.fetchall()]


def is_document_shared_with(document_id: int, user_id: int) -> bool:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT 1 FROM document_shares WHERE document_id = ? AND user_id = ?",
            (document_id, user_id)
        )
        return cursor.fetchone() is not None


def share_document(document_id: int, user_ids: Iterable[int], shared_by: int):
    with get_db() as conn:
        conn.executemany(
            "INSERT OR IGNORE INTO document_shares (document_id, user_id, shared_by) VALUES (?, ?, ?)",
            [(document_id, user_id, shared_by) for user_id in user_ids]
        )
        conn.commit()


def revoke_document_share(document_id: int, user_id: int) -> bool:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "DELETE FROM document_shares WHERE document_id = ? AND user_id = ?",
            (document_id, user_id)
        )
        conn.commit()
        return cursor.rowcount > 0


def list_document_shares(document_id: int) -> List[int]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT user_id FROM document_shares WHERE document_id = ? ORDER BY user_id",
            (document_id,)
        )
        return [row["user_id"] for row in cursor.fetchall()]
