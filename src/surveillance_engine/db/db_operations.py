"""
Database operations for the supervision assignment engine
Provides the roster/availability/exam data the engine consumes and stores
the assignments it produces
"""

import json
import logging
import sqlite3
from datetime import datetime
from typing import Dict, List, Tuple, Any, Optional, Iterable

import pandas as pd

from .db import create_schema
from ..exceptions import AssignmentError

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Manages all database operations for the supervision assignment engine"""

    def __init__(self, db_path="planning.db"):
        """Initialize database manager with path to SQLite database"""
        self.db_path = db_path
        self._ensure_database_exists()
        self._migrate_database()

    def _ensure_database_exists(self):
        """Ensure the database and tables exist"""
        conn = self.get_connection()
        try:
            create_schema(conn)
        finally:
            conn.close()

    def _migrate_database(self):
        """Apply database migrations for schema updates"""
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("PRAGMA table_info(Enseignants)")
            columns = [col[1] for col in cursor.fetchall()]

            if 'credit_report' not in columns:
                logger.info("🔄 Migration: Adding credit_report column to Enseignants...")
                cursor.execute("ALTER TABLE Enseignants ADD COLUMN credit_report INTEGER DEFAULT 0")
                conn.commit()

            cursor.execute("PRAGMA table_info(Affectations)")
            columns = [col[1] for col in cursor.fetchall()]

            if 'actif' not in columns:
                logger.info("🔄 Migration: Adding actif column to Affectations...")
                cursor.execute("ALTER TABLE Affectations ADD COLUMN actif BOOLEAN NOT NULL DEFAULT 1")
                conn.commit()

        except sqlite3.Error as e:
            conn.rollback()
            raise Exception(f"Failed to migrate database: {str(e)}")
        finally:
            conn.close()

    def get_connection(self):
        """Get a database connection"""
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    # ==================== SESSION MANAGEMENT ====================

    def create_session(self, nom: str, nb_jours_examen: int,
                       annee_academique: str = None, semestre: str = None) -> int:
        """
        Create a new exam session

        Args:
            nom: Session label (e.g., "Session Principale Janvier 2025")
            nb_jours_examen: Number of exam days in the session
            annee_academique: Academic year (e.g., "2024-2025")
            semestre: Semester (e.g., "S1", "S2")

        Returns:
            session_id: ID of the created session
        """
        conn = self.get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            INSERT INTO Sessions (nom, annee_academique, semestre, nb_jours_examen)
            VALUES (?, ?, ?, ?)
        """, (nom, annee_academique, semestre, nb_jours_examen))

        session_id = cursor.lastrowid
        conn.commit()
        conn.close()

        return session_id

    def get_session_metadata(self, session_id: int) -> Optional[Dict]:
        """Get (id, label, number of exam days) for a session, or None"""
        conn = self.get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            SELECT id, nom, nb_jours_examen
            FROM Sessions
            WHERE id = ?
        """, (session_id,))

        row = cursor.fetchone()
        conn.close()

        if row:
            return {
                'id': row[0],
                'label': row[1],
                'num_exam_days': int(row[2] or 0)
            }
        return None

    def list_sessions(self) -> List[Dict]:
        """List all sessions"""
        conn = self.get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            SELECT id, nom, annee_academique, semestre, nb_jours_examen
            FROM Sessions
            ORDER BY id DESC
        """)

        sessions = []
        for row in cursor.fetchall():
            sessions.append({
                'id': row[0],
                'nom': row[1],
                'annee_academique': row[2],
                'semestre': row[3],
                'nb_jours_examen': row[4]
            })

        conn.close()
        return sessions

    def delete_session(self, session_id: int) -> bool:
        """
        Delete a session and all its related data

        Args:
            session_id: Session ID to delete

        Returns:
            True if successful, raises exception otherwise
        """
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM Affectations WHERE session_id = ?", (session_id,))
            cursor.execute("DELETE FROM Sessions WHERE id = ?", (session_id,))
            if cursor.rowcount == 0:
                raise ValueError(f"Session with id {session_id} not found")
            conn.commit()
            return True
        except Exception as e:
            conn.rollback()
            raise Exception(f"Failed to delete session: {str(e)}")
        finally:
            conn.close()

    # ==================== CONFIGURATION ====================

    def save_constraint_config(self, session_id: int, config_dict: Dict[str, Any]):
        """Store the constraint configuration of a session as JSON"""
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO Configs (session_id, contraintes_json, mis_a_jour_le)
                VALUES (?, ?, ?)
                ON CONFLICT(session_id) DO UPDATE SET
                    contraintes_json = excluded.contraintes_json,
                    mis_a_jour_le = excluded.mis_a_jour_le
            """, (session_id, json.dumps(config_dict), datetime.now().isoformat()))
            conn.commit()
        except Exception as e:
            conn.rollback()
            raise Exception(f"Failed to save configuration: {str(e)}")
        finally:
            conn.close()

    def get_constraint_config(self, session_id: int) -> Optional[Dict[str, Any]]:
        """Get the stored constraint configuration of a session, or None"""
        conn = self.get_connection()
        cursor = conn.cursor()

        cursor.execute("SELECT contraintes_json FROM Configs WHERE session_id = ?", (session_id,))
        row = cursor.fetchone()
        conn.close()

        return json.loads(row[0]) if row else None

    # ==================== GRADES ====================

    def upsert_grade(self, code: str, priorite: int, quota_defaut: int = 0, libelle: str = None):
        """Create or update a grade with its relaxation priority and default quota"""
        conn = self.get_connection()
        conn.execute("""
            INSERT INTO Grades (code, libelle, priorite, quota_defaut)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(code) DO UPDATE SET
                libelle = excluded.libelle,
                priorite = excluded.priorite,
                quota_defaut = excluded.quota_defaut
        """, (code, libelle, priorite, quota_defaut))
        conn.commit()
        conn.close()

    def get_priorities_by_grade(self) -> Dict[str, int]:
        """Priority per grade code (lower = more protected)"""
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT code, priorite FROM Grades")
        priorities = {row[0]: int(row[1]) for row in cursor.fetchall()}
        conn.close()
        return priorities

    def get_default_quotas_by_grade(self) -> Dict[str, int]:
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT code, quota_defaut FROM Grades")
        quotas = {row[0]: int(row[1] or 0) for row in cursor.fetchall()}
        conn.close()
        return quotas

    # ==================== TEACHERS (ENSEIGNANTS) ====================

    def add_teacher(self, session_id: int, nom: str, prenom: str = '', grade: str = None,
                    email: str = None, participe_surveillance: bool = True) -> int:
        """
        Add a teacher to a session roster

        Returns:
            teacher_id: Database ID of the teacher
        """
        conn = self.get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            INSERT INTO Enseignants (session_id, nom_ens, prenom_ens, email_ens, grade,
                                     participe_surveillance)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (session_id, nom, prenom, email, grade, 1 if participe_surveillance else 0))

        teacher_id = cursor.lastrowid
        conn.commit()
        conn.close()
        return teacher_id

    def get_teachers(self, session_id: int, participating_only: bool = True) -> pd.DataFrame:
        """
        Get teachers for a session as DataFrame

        Args:
            session_id: Session ID
            participating_only: If True, only return teachers who participate in surveillance

        Returns:
            DataFrame with teacher information including 'id' column
        """
        conn = self.get_connection()

        query = """
            SELECT id, nom_ens, prenom_ens, email_ens, grade,
                   participe_surveillance, credit_report
            FROM Enseignants
            WHERE session_id = ?
        """

        if participating_only:
            query += " AND participe_surveillance = 1"

        query += " ORDER BY id"

        df = pd.read_sql_query(query, conn, params=(session_id,))
        conn.close()

        return df

    def get_participation(self, session_id: int) -> Dict[int, bool]:
        teachers_df = self.get_teachers(session_id, participating_only=False)
        return {int(row.id): bool(row.participe_surveillance) for row in teachers_df.itertuples()}

    def get_grades(self, session_id: int) -> Dict[int, Optional[str]]:
        teachers_df = self.get_teachers(session_id, participating_only=False)
        return {
            int(row.id): (row.grade if pd.notna(row.grade) else None)
            for row in teachers_df.itertuples()
        }

    def get_names(self, session_id: int) -> Dict[int, str]:
        teachers_df = self.get_teachers(session_id, participating_only=False)
        names = {}
        for row in teachers_df.itertuples():
            prenom = row.prenom_ens.strip() if isinstance(row.prenom_ens, str) else ''
            nom = row.nom_ens.strip() if isinstance(row.nom_ens, str) else ''
            names[int(row.id)] = f"{prenom} {nom}".strip() or "Unknown"
        return names

    def get_emails(self, session_id: int) -> Dict[int, str]:
        teachers_df = self.get_teachers(session_id, participating_only=False)
        return {
            int(row.id): (row.email_ens if isinstance(row.email_ens, str) else "Unknown")
            for row in teachers_df.itertuples()
        }

    # ==================== QUOTAS ====================

    def set_quota(self, session_id: int, teacher_id: int, quota: int):
        """Set an explicit supervision quota for a teacher in a session"""
        conn = self.get_connection()
        conn.execute("""
            INSERT INTO Quotas (session_id, enseignant_id, quota)
            VALUES (?, ?, ?)
            ON CONFLICT(session_id, enseignant_id) DO UPDATE SET quota = excluded.quota
        """, (session_id, teacher_id, quota))
        conn.commit()
        conn.close()

    def get_quotas(self, session_id: int) -> Dict[int, int]:
        """
        Get the base quota of every teacher of a session

        Explicit session quotas win; otherwise the grade default quota is used,
        and 0 when the grade is unknown.

        Returns:
            Dictionary mapping teacher_id -> quota
        """
        conn = self.get_connection()

        query = """
            SELECT E.id AS teacher_id,
                   Q.quota AS explicit_quota,
                   G.quota_defaut AS grade_quota
            FROM Enseignants E
            LEFT JOIN Quotas Q ON Q.enseignant_id = E.id AND Q.session_id = E.session_id
            LEFT JOIN Grades G ON G.code = E.grade
            WHERE E.session_id = ?
            ORDER BY E.id
        """

        df = pd.read_sql_query(query, conn, params=(session_id,))
        conn.close()

        quotas = {}
        for row in df.itertuples():
            if pd.notna(row.explicit_quota):
                quotas[int(row.teacher_id)] = int(row.explicit_quota)
            elif pd.notna(row.grade_quota):
                quotas[int(row.teacher_id)] = int(row.grade_quota)
            else:
                quotas[int(row.teacher_id)] = 0
        return quotas

    # ==================== UNAVAILABILITY (VOEUX) ====================

    def add_unavailability(self, session_id: int, teacher_id: int, jour: int, seance: str):
        """Declare a teacher unavailable for one day/seance (duplicates are ignored)"""
        conn = self.get_connection()
        conn.execute("""
            INSERT OR IGNORE INTO Voeux (session_id, enseignant_id, jour, seance)
            VALUES (?, ?, ?, ?)
        """, (session_id, teacher_id, int(jour), str(seance).upper()))
        conn.commit()
        conn.close()

    def get_unavailabilities(self, session_id: int) -> List[Tuple[int, int, str]]:
        """
        Get all unavailability records of a session

        Returns:
            List of (teacher_id, jour, seance)
        """
        conn = self.get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            SELECT enseignant_id, jour, seance
            FROM Voeux
            WHERE session_id = ?
            ORDER BY enseignant_id, jour, seance
        """, (session_id,))

        records = [(int(row[0]), int(row[1]), str(row[2])) for row in cursor.fetchall()]
        conn.close()
        return records

    def is_unavailable(self, session_id: int, teacher_id: int, jour: int, seance: str) -> bool:
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT 1 FROM Voeux
            WHERE session_id = ? AND enseignant_id = ? AND jour = ? AND seance = ?
            LIMIT 1
        """, (session_id, teacher_id, int(jour), str(seance).upper()))
        found = cursor.fetchone() is not None
        conn.close()
        return found

    # ==================== EXAMS (EXAMENS) ====================

    def add_exam(self, session_id: int, jour: int, seance: str = None, salle: str = None,
                 responsable_id: int = None, nb_surveillants: int = 2,
                 date_examen: str = None, heure_debut: str = None, heure_fin: str = None) -> int:
        """
        Add a raw exam row

        The same (jour, seance, salle) may appear several times, once per
        owner or subject; the loader groups them into one logical exam.

        Returns:
            exam_id: Database ID of the row
        """
        conn = self.get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            INSERT INTO Examens (session_id, jour, seance, salle, responsable_id,
                                 nb_surveillants, date_examen, heure_debut, heure_fin)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (session_id, jour, seance.upper() if seance else None, salle, responsable_id,
              nb_surveillants, date_examen, heure_debut, heure_fin))

        exam_id = cursor.lastrowid
        conn.commit()
        conn.close()
        return exam_id

    def get_exams_for_assignment(self, session_id: int) -> pd.DataFrame:
        """
        Get raw exam rows of a session, before deduplication

        Returns:
            DataFrame with columns id, jour, seance, salle, responsable_id,
            nb_surveillants, date_examen, heure_debut, heure_fin
        """
        conn = self.get_connection()

        query = """
            SELECT id, jour, seance, salle, responsable_id, nb_surveillants,
                   date_examen, heure_debut, heure_fin
            FROM Examens
            WHERE session_id = ?
            ORDER BY jour, seance, salle, id
        """

        df = pd.read_sql_query(query, conn, params=(session_id,))
        conn.close()
        return df

    def get_exam(self, exam_id: int) -> Optional[Dict]:
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT id, session_id, jour, seance, salle, responsable_id, nb_surveillants,
                   date_examen, heure_debut, heure_fin
            FROM Examens
            WHERE id = ?
        """, (exam_id,))
        row = cursor.fetchone()
        conn.close()

        if not row:
            return None
        return {
            'id': row[0], 'session_id': row[1], 'jour': row[2], 'seance': row[3],
            'salle': row[4], 'responsable_id': row[5], 'nb_surveillants': row[6],
            'date_examen': row[7], 'heure_debut': row[8], 'heure_fin': row[9]
        }

    def get_exam_owners(self, session_id: int, jour: int, seance: str, salle: Optional[str]) -> set:
        """Owner ids of every row sharing the (jour, seance, salle) of a logical exam"""
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT DISTINCT responsable_id
            FROM Examens
            WHERE session_id = ? AND jour = ? AND seance = ? AND salle IS ?
              AND responsable_id IS NOT NULL
        """, (session_id, jour, seance, salle))
        owners = {int(row[0]) for row in cursor.fetchall()}
        conn.close()
        return owners

    # ==================== ASSIGNMENTS (AFFECTATIONS) ====================

    def deactivate_all(self, session_id: int, conn=None) -> int:
        """Deactivate every active assignment of a session"""
        own_conn = conn is None
        conn = conn or self.get_connection()
        try:
            cursor = conn.execute("""
                UPDATE Affectations SET actif = 0
                WHERE session_id = ? AND actif = 1
            """, (session_id,))
            if own_conn:
                conn.commit()
            return cursor.rowcount
        finally:
            if own_conn:
                conn.close()

    def save_all(self, rows: Iterable[Dict[str, Any]], conn=None) -> int:
        """
        Insert assignment rows

        Args:
            rows: Dicts with session_id, examen_id, enseignant_id, jour, seance,
                  date_examen, heure_debut, heure_fin
            conn: Optional open connection (the caller then owns the transaction)

        Returns:
            count: Number of rows inserted
        """
        own_conn = conn is None
        conn = conn or self.get_connection()
        now = datetime.now().isoformat()
        try:
            count = 0
            for row in rows:
                conn.execute("""
                    INSERT INTO Affectations (session_id, examen_id, enseignant_id, jour, seance,
                                              date_examen, heure_debut, heure_fin, actif,
                                              date_affectation)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, ?)
                """, (row['session_id'], row['examen_id'], row['enseignant_id'], row['jour'],
                      row['seance'], row.get('date_examen'), row.get('heure_debut'),
                      row.get('heure_fin'), now))
                count += 1
            if own_conn:
                conn.commit()
            return count
        except Exception:
            if own_conn:
                conn.rollback()
            raise
        finally:
            if own_conn:
                conn.close()

    def update_rollover_credit(self, teacher_id: int, credit: int, conn=None):
        """Store the unavailability credit carried over to future sessions"""
        own_conn = conn is None
        conn = conn or self.get_connection()
        try:
            conn.execute("UPDATE Enseignants SET credit_report = ? WHERE id = ?",
                         (int(credit), teacher_id))
            if own_conn:
                conn.commit()
        finally:
            if own_conn:
                conn.close()

    def save_run_metadata(self, result, conn=None):
        """Replace the run record of a session with the given result's metadata"""
        own_conn = conn is None
        conn = conn or self.get_connection()
        meta = result.metadata
        try:
            conn.execute("DELETE FROM Executions WHERE session_id = ?", (meta.session_id,))
            conn.execute("""
                INSERT INTO Executions (session_id, statut, optimal, total_affectations,
                                        enseignants_relaches, tentatives_relaxation,
                                        temps_resolution, message, cree_le)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (meta.session_id, result.status.value, 1 if meta.is_optimal else 0,
                  meta.total_assignments_made, meta.relaxed_teachers_count,
                  meta.relaxation_attempts, meta.solution_time_seconds, result.message,
                  datetime.now().isoformat()))
            if own_conn:
                conn.commit()
        except Exception:
            if own_conn:
                conn.rollback()
            raise
        finally:
            if own_conn:
                conn.close()

    def save_assignment_results(self, result) -> int:
        """
        Persist an assignment result in a single transaction

        A successful result supersedes every active assignment of the session,
        inserts the new rows and updates each teacher's rollover credit. Any
        other status only replaces the run record.

        Returns:
            count: Number of assignment rows inserted
        """
        session_id = result.metadata.session_id
        conn = self.get_connection()

        try:
            count = 0
            if result.ok:
                self.deactivate_all(session_id, conn=conn)

                rows = []
                for exam in result.exam_assignments or []:
                    for teacher in exam.assigned_teachers:
                        rows.append({
                            'session_id': session_id,
                            'examen_id': exam.exam_id,
                            'enseignant_id': teacher.teacher_id,
                            'jour': exam.day,
                            'seance': exam.seance,
                            'date_examen': exam.exam_date,
                            'heure_debut': exam.start_time,
                            'heure_fin': exam.end_time,
                        })
                count = self.save_all(rows, conn=conn)

                for workload in result.teacher_workloads or []:
                    self.update_rollover_credit(workload.teacher_id, workload.unavailability_credit,
                                                conn=conn)

            self.save_run_metadata(result, conn=conn)
            conn.commit()
            return count

        except Exception as e:
            conn.rollback()
            raise Exception(f"Failed to save assignment results: {str(e)}")
        finally:
            conn.close()

    def get_assignment(self, assignment_id: int) -> Optional[Dict]:
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT id, session_id, examen_id, enseignant_id, jour, seance, actif
            FROM Affectations
            WHERE id = ?
        """, (assignment_id,))
        row = cursor.fetchone()
        conn.close()

        if not row:
            return None
        return {
            'id': row[0], 'session_id': row[1], 'examen_id': row[2],
            'enseignant_id': row[3], 'jour': row[4], 'seance': row[5],
            'actif': bool(row[6])
        }

    def get_active_assignments(self, session_id: int) -> List[Dict]:
        """
        Get all active assignments for a session

        Returns:
            List of assignment dictionaries
        """
        conn = self.get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            SELECT A.id, A.examen_id, A.enseignant_id, E.nom_ens, E.prenom_ens, E.grade,
                   A.jour, A.seance, A.date_examen, A.heure_debut, A.heure_fin,
                   A.date_affectation
            FROM Affectations A
            JOIN Enseignants E ON A.enseignant_id = E.id
            WHERE A.session_id = ? AND A.actif = 1
            ORDER BY A.jour, A.seance, A.examen_id, A.enseignant_id
        """, (session_id,))

        assignments = []
        for row in cursor.fetchall():
            assignments.append({
                'id': row[0],
                'examen_id': row[1],
                'enseignant_id': row[2],
                'nom_ens': row[3],
                'prenom_ens': row[4],
                'grade': row[5],
                'jour': row[6],
                'seance': row[7],
                'date_examen': row[8],
                'heure_debut': row[9],
                'heure_fin': row[10],
                'date_affectation': row[11]
            })

        conn.close()
        return assignments

    def get_teacher_assignments(self, session_id: int, teacher_id: int) -> List[Dict]:
        return [a for a in self.get_active_assignments(session_id)
                if a['enseignant_id'] == teacher_id]

    def has_assignments(self, session_id: int) -> bool:
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT 1 FROM Affectations WHERE session_id = ? AND actif = 1 LIMIT 1",
                       (session_id,))
        found = cursor.fetchone() is not None
        conn.close()
        return found

    def has_active_assignment_at(self, session_id: int, teacher_id: int, jour: int, seance: str,
                                 exclude_assignment_id: int = None) -> bool:
        """True if the teacher has another active assignment at this day/seance"""
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT 1 FROM Affectations
            WHERE session_id = ? AND enseignant_id = ? AND jour = ? AND seance = ?
              AND actif = 1 AND id IS NOT ?
            LIMIT 1
        """, (session_id, teacher_id, jour, seance, exclude_assignment_id))
        found = cursor.fetchone() is not None
        conn.close()
        return found

    def swap_assignment_teachers(self, assignment_id_1: int, assignment_id_2: int,
                                 reason: str = '', recheck=None) -> None:
        """
        Exchange the teachers of two assignments atomically and audit it.

        The write lock is taken before anything is read. ``recheck`` is called
        under that lock, so a check it raises from sees every committed write.
        """
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("BEGIN IMMEDIATE")
            if recheck is not None:
                recheck()

            cursor.execute("SELECT enseignant_id, session_id FROM Affectations WHERE id = ?",
                           (assignment_id_1,))
            first = cursor.fetchone()
            cursor.execute("SELECT enseignant_id, session_id FROM Affectations WHERE id = ?",
                           (assignment_id_2,))
            second = cursor.fetchone()
            if first is None or second is None:
                raise ValueError("Both assignments must exist")

            cursor.execute("UPDATE Affectations SET enseignant_id = ? WHERE id = ?",
                           (second[0], assignment_id_1))
            cursor.execute("UPDATE Affectations SET enseignant_id = ? WHERE id = ?",
                           (first[0], assignment_id_2))

            for assignment_id in (assignment_id_1, assignment_id_2):
                self.log_audit(first[1], assignment_id, 'SWAP', reason, conn=conn)

            conn.commit()
        except AssignmentError:
            conn.rollback()
            raise
        except Exception as e:
            conn.rollback()
            raise Exception(f"Failed to swap assignments: {str(e)}")
        finally:
            conn.close()

    def delete_assignments(self, session_id: int):
        """Deactivate the assignments of a session and drop its run record"""
        conn = self.get_connection()
        try:
            self.deactivate_all(session_id, conn=conn)
            conn.execute("DELETE FROM Executions WHERE session_id = ?", (session_id,))
            conn.commit()
        except Exception as e:
            conn.rollback()
            raise Exception(f"Failed to delete assignments: {str(e)}")
        finally:
            conn.close()

    def get_last_run(self, session_id: int) -> Optional[Dict]:
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT statut, optimal, total_affectations, enseignants_relaches,
                   tentatives_relaxation, temps_resolution, message, cree_le
            FROM Executions
            WHERE session_id = ?
        """, (session_id,))
        row = cursor.fetchone()
        conn.close()

        if not row:
            return None
        return {
            'statut': row[0],
            'optimal': bool(row[1]),
            'total_affectations': row[2],
            'enseignants_relaches': row[3],
            'tentatives_relaxation': row[4],
            'temps_resolution': row[5],
            'message': row[6],
            'cree_le': row[7]
        }

    def get_rollover_credit(self, teacher_id: int) -> int:
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT credit_report FROM Enseignants WHERE id = ?", (teacher_id,))
        row = cursor.fetchone()
        conn.close()
        return int(row[0] or 0) if row else 0

    # ==================== AUDIT TRAIL ====================

    def log_audit(self, session_id: int, affectation_id: int = None,
                  action: str = '', raison: str = '', conn=None):
        """Log an audit entry, inside the caller's transaction when conn is given"""
        own_conn = conn is None
        conn = conn or self.get_connection()
        try:
            conn.execute("""
                INSERT INTO Audits (session_id, affectation_id, action, raison, cree_le)
                VALUES (?, ?, ?, ?, ?)
            """, (session_id, affectation_id, action, raison, datetime.now().isoformat()))
            if own_conn:
                conn.commit()
        finally:
            if own_conn:
                conn.close()

    def get_audits(self, session_id: int) -> List[Dict]:
        conn = self.get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT id, affectation_id, action, raison, cree_le
            FROM Audits
            WHERE session_id = ?
            ORDER BY id
        """, (session_id,))
        audits = [
            {'id': r[0], 'affectation_id': r[1], 'action': r[2], 'raison': r[3], 'cree_le': r[4]}
            for r in cursor.fetchall()
        ]
        conn.close()
        return audits
