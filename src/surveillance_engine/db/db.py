import sqlite3

SCHEMA = """
CREATE TABLE IF NOT EXISTS Sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    nom TEXT NOT NULL,
    annee_academique TEXT,
    semestre TEXT,
    nb_jours_examen INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS Configs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL UNIQUE,
    contraintes_json TEXT NOT NULL,
    mis_a_jour_le TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (session_id) REFERENCES Sessions(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS Grades (
    code TEXT PRIMARY KEY,
    libelle TEXT,
    priorite INTEGER NOT NULL,
    quota_defaut INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS Enseignants (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL,
    nom_ens TEXT NOT NULL,
    prenom_ens TEXT,
    email_ens TEXT,
    grade TEXT,
    participe_surveillance BOOLEAN DEFAULT 1,
    credit_report INTEGER DEFAULT 0,
    FOREIGN KEY (session_id) REFERENCES Sessions(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS Quotas (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL,
    enseignant_id INTEGER NOT NULL,
    quota INTEGER NOT NULL,
    FOREIGN KEY (session_id) REFERENCES Sessions(id) ON DELETE CASCADE,
    FOREIGN KEY (enseignant_id) REFERENCES Enseignants(id) ON DELETE CASCADE,
    UNIQUE(session_id, enseignant_id)
);

CREATE TABLE IF NOT EXISTS Voeux (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL,
    enseignant_id INTEGER NOT NULL,
    jour INTEGER NOT NULL,
    seance TEXT NOT NULL,
    FOREIGN KEY (session_id) REFERENCES Sessions(id) ON DELETE CASCADE,
    FOREIGN KEY (enseignant_id) REFERENCES Enseignants(id) ON DELETE CASCADE,
    UNIQUE(session_id, enseignant_id, jour, seance)
);

CREATE TABLE IF NOT EXISTS Examens (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL,
    jour INTEGER NOT NULL,
    seance TEXT,
    salle TEXT,
    responsable_id INTEGER,
    nb_surveillants INTEGER NOT NULL DEFAULT 2,
    date_examen TEXT,
    heure_debut TEXT,
    heure_fin TEXT,
    FOREIGN KEY (session_id) REFERENCES Sessions(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS Affectations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL,
    examen_id INTEGER NOT NULL,
    enseignant_id INTEGER NOT NULL,
    jour INTEGER NOT NULL,
    seance TEXT NOT NULL,
    date_examen TEXT,
    heure_debut TEXT,
    heure_fin TEXT,
    actif BOOLEAN NOT NULL DEFAULT 1,
    date_affectation TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (session_id) REFERENCES Sessions(id) ON DELETE CASCADE,
    FOREIGN KEY (examen_id) REFERENCES Examens(id),
    FOREIGN KEY (enseignant_id) REFERENCES Enseignants(id)
);

CREATE INDEX IF NOT EXISTS idx_affectations_session_actif
    ON Affectations(session_id, actif);

CREATE TABLE IF NOT EXISTS Executions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL UNIQUE,
    statut TEXT NOT NULL,
    optimal BOOLEAN DEFAULT 0,
    total_affectations INTEGER DEFAULT 0,
    enseignants_relaches INTEGER DEFAULT 0,
    tentatives_relaxation INTEGER DEFAULT 0,
    temps_resolution REAL DEFAULT 0,
    message TEXT,
    cree_le TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (session_id) REFERENCES Sessions(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS Audits (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL,
    affectation_id INTEGER,
    action TEXT,
    raison TEXT,
    cree_le TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (session_id) REFERENCES Sessions(id) ON DELETE CASCADE
);
"""


def create_schema(conn: sqlite3.Connection):
    """Create every table (idempotent)."""
    conn.executescript(SCHEMA)
    conn.commit()


def create_database(db_path: str = "planning.db"):
    """Create (or complete) the database file at db_path."""
    conn = sqlite3.connect(db_path)
    try:
        create_schema(conn)
    finally:
        conn.close()


if __name__ == '__main__':
    create_database("planning.db")
    print("✅ Database 'planning.db' ready")
