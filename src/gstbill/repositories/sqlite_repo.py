from __future__ import annotations

import sqlite3
import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional

from gstbill.domain.models import (
    Category,
    CompanyDetails,
    Customer,
    Invoice,
    InvoiceItem,
    InvoiceListRow,
    Product,
    Purchase,
    ReportRow,
    StockMismatch,
    StockMovement,
    Unit,
)

DEFAULT_CATEGORIES = [
    ("Fertilizers", "Nutrients for plant growth", "Leaf"),
    ("Organic Fertilizers", "Natural fertilizers derived from plant or animal matter", "Sprout"),
    ("Chemical Fertilizers (Urea, DAP, NPK)", "Synthetic fertilizers providing specific nutrients", "FlaskConical"),
    ("Micronutrients", "Essential elements required by plants in small quantities", "TestTube2"),
    ("Pesticides & Crop Protection", "Chemicals to control pests, diseases, and weeds", "Shield"),
    ("Insecticides", "Substances used to kill insects", "Bug"),
    ("Fungicides", "Biocidal chemical compounds used to kill parasitic fungi", "SunSnow"),
    ("Herbicides", "Substances that are toxic to plants, used to destroy unwanted vegetation", "Ban"),
    ("Bio-Pesticides", "Pesticides derived from natural materials like animals, plants, bacteria", "Trees"),
]

PRODUCT_COLUMNS = "id, name, hsn_code, stock_quantity, unit_price, tax_rate, description, unit_id, category_id"
CUSTOMER_COLUMNS = "id, name, email, phone, gst_pan, billing_address, is_guest"
INVOICE_COLUMNS = "id, customer_id, invoice_number, invoice_date, notes, total_amount, created_at"
ITEM_COLUMNS = "id, invoice_id, product_id, quantity, unit_price, tax_rate"
COMPANY_COLUMNS = "name, slogan, address, gstin, account_name, account_number, account_type, bank_name, ifsc_code"

COMBINED_TRANSACTIONS = """
    WITH combined AS (
        SELECT ii.id AS transaction_id,
               i.invoice_date AS transaction_date,
               'Sale' AS transaction_type,
               i.invoice_number AS reference_number,
               p.name AS product_name,
               -ii.quantity AS quantity_change
        FROM invoice_items ii
        JOIN invoices i ON i.id = ii.invoice_id
        JOIN products p ON p.id = ii.product_id
        WHERE :type IN ('all', 'sale')
          AND i.invoice_date BETWEEN :start AND :end
        UNION ALL
        SELECT pu.id, pu.purchase_date, 'Purchase', pu.reference_invoice, p.name, pu.quantity
        FROM purchases pu
        JOIN products p ON p.id = pu.product_id
        WHERE :type IN ('all', 'purchase')
          AND pu.purchase_date BETWEEN :start AND :end
    )
"""


def _product(r) -> Product:
    return Product(
        id=int(r[0]),
        name=str(r[1]),
        hsn_code=r[2],
        stock_quantity=int(r[3]),
        unit_price=float(r[4]),
        tax_rate=float(r[5]),
        description=r[6],
        unit_id=(int(r[7]) if r[7] is not None else None),
        category_id=(int(r[8]) if r[8] is not None else None),
    )


def _customer(r) -> Customer:
    return Customer(
        id=int(r[0]),
        name=str(r[1]),
        email=r[2],
        phone=r[3],
        gst_pan=r[4],
        billing_address=r[5],
        is_guest=int(r[6]),
    )


def _invoice(r) -> Invoice:
    return Invoice(
        id=int(r[0]),
        customer_id=(int(r[1]) if r[1] is not None else None),
        invoice_number=str(r[2]),
        invoice_date=str(r[3]),
        notes=r[4],
        total_amount=float(r[5]),
        created_at=str(r[6]),
    )


def _item(r) -> InvoiceItem:
    return InvoiceItem(
        id=int(r[0]),
        invoice_id=int(r[1]),
        product_id=int(r[2]),
        quantity=int(r[3]),
        unit_price=float(r[4]),
        tax_rate=float(r[5]),
    )


class SqliteRepository:
    def __init__(self, db_path: Path | str, busy_timeout: float = 30.0):
        self.db_path = str(db_path)
        self.busy_timeout = float(busy_timeout)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            for version, migration in self.migrations():
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def migrations(self):
        return [
            (1, self._migration_v1_base),
            (2, self._migration_v2_seed_categories),
            (3, self._migration_v3_report_indexes),
        ]

    def schema_version(self) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
        version = int(cur.fetchone()[0])
        conn.close()
        return version

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS company_details (
                id INTEGER PRIMARY KEY DEFAULT 1 CHECK(id = 1),
                created_at TEXT NOT NULL DEFAULT (datetime('now')),
                name TEXT,
                slogan TEXT,
                address TEXT,
                gstin TEXT,
                account_name TEXT,
                account_number TEXT,
                account_type TEXT,
                bank_name TEXT,
                ifsc_code TEXT
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS customers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_at TEXT NOT NULL DEFAULT (datetime('now')),
                name TEXT NOT NULL UNIQUE,
                email TEXT,
                phone TEXT,
                gst_pan TEXT,
                billing_address TEXT,
                is_guest INTEGER NOT NULL DEFAULT 0 CHECK(is_guest IN (0,1))
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS units (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_at TEXT NOT NULL DEFAULT (datetime('now')),
                name TEXT NOT NULL UNIQUE,
                abbreviation TEXT NOT NULL UNIQUE
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS categories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_at TEXT NOT NULL DEFAULT (datetime('now')),
                name TEXT NOT NULL UNIQUE,
                description TEXT,
                icon_name TEXT
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS products (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_at TEXT NOT NULL DEFAULT (datetime('now')),
                name TEXT NOT NULL UNIQUE,
                description TEXT,
                hsn_code TEXT,
                stock_quantity INTEGER NOT NULL DEFAULT 0 CHECK(stock_quantity >= 0),
                unit_price REAL NOT NULL CHECK(unit_price >= 0),
                tax_rate REAL NOT NULL CHECK(tax_rate >= 0 AND tax_rate <= 1),
                unit_id INTEGER,
                category_id INTEGER,
                FOREIGN KEY(unit_id) REFERENCES units(id) ON DELETE SET NULL,
                FOREIGN KEY(category_id) REFERENCES categories(id) ON DELETE SET NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS purchases (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_at TEXT NOT NULL DEFAULT (datetime('now')),
                product_id INTEGER NOT NULL,
                purchase_date TEXT NOT NULL,
                reference_invoice TEXT,
                quantity INTEGER NOT NULL CHECK(quantity > 0),
                FOREIGN KEY(product_id) REFERENCES products(id) ON DELETE RESTRICT
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS invoices (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_at TEXT NOT NULL DEFAULT (datetime('now')),
                customer_id INTEGER,
                invoice_number TEXT NOT NULL UNIQUE,
                invoice_date TEXT NOT NULL,
                notes TEXT,
                total_amount REAL NOT NULL DEFAULT 0,
                FOREIGN KEY(customer_id) REFERENCES customers(id) ON DELETE RESTRICT
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS invoice_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_at TEXT NOT NULL DEFAULT (datetime('now')),
                invoice_id INTEGER NOT NULL,
                product_id INTEGER NOT NULL,
                quantity INTEGER NOT NULL CHECK(quantity > 0),
                unit_price REAL NOT NULL CHECK(unit_price >= 0),
                tax_rate REAL NOT NULL CHECK(tax_rate >= 0 AND tax_rate <= 1),
                FOREIGN KEY(invoice_id) REFERENCES invoices(id) ON DELETE CASCADE,
                FOREIGN KEY(product_id) REFERENCES products(id) ON DELETE RESTRICT
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS stock_movements (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                datetime TEXT NOT NULL,
                product_id INTEGER NOT NULL,
                movement_type TEXT NOT NULL CHECK(movement_type IN ('sale','purchase')),
                qty_delta INTEGER NOT NULL,
                stock_after INTEGER NOT NULL CHECK(stock_after >= 0),
                reference_type TEXT NOT NULL CHECK(reference_type IN ('purchase','invoice_item')),
                reference_id INTEGER NOT NULL,
                notes TEXT,
                FOREIGN KEY(product_id) REFERENCES products(id) ON DELETE CASCADE
            )
            """
        )

    def _migration_v2_seed_categories(self, cur: sqlite3.Cursor) -> None:
        cur.executemany(
            """
            INSERT INTO categories (name, description, icon_name) VALUES (?, ?, ?)
            ON CONFLICT(name) DO UPDATE SET description=excluded.description, icon_name=excluded.icon_name
            """,
            DEFAULT_CATEGORIES,
        )

    def _migration_v3_report_indexes(self, cur: sqlite3.Cursor) -> None:
        cur.execute("CREATE INDEX IF NOT EXISTS ix_purchases_product_id ON purchases (product_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_purchases_purchase_date ON purchases (purchase_date)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_invoices_invoice_date ON invoices (invoice_date)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_invoices_customer_id ON invoices (customer_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_invoice_items_invoice_id ON invoice_items (invoice_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_invoice_items_product_id ON invoice_items (product_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_stock_movements_product_id ON stock_movements (product_id)")

    # ---------- Units / Categories ----------
    def insert_unit(self, cur: sqlite3.Cursor, name: str, abbreviation: str) -> int:
        cur.execute("INSERT INTO units (name, abbreviation) VALUES (?, ?)", (name, abbreviation))
        return int(cur.lastrowid)

    def delete_unit_row(self, cur: sqlite3.Cursor, unit_id: int) -> bool:
        cur.execute("DELETE FROM units WHERE id=?", (int(unit_id),))
        return cur.rowcount > 0

    def list_units(self) -> list[Unit]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT id, name, abbreviation FROM units ORDER BY name")
        rows = cur.fetchall()
        conn.close()
        return [Unit(id=int(r[0]), name=str(r[1]), abbreviation=str(r[2])) for r in rows]

    def insert_category(self, cur: sqlite3.Cursor, name: str, description: Optional[str], icon_name: Optional[str]) -> int:
        cur.execute(
            "INSERT INTO categories (name, description, icon_name) VALUES (?, ?, ?)",
            (name, description, icon_name),
        )
        return int(cur.lastrowid)

    def delete_category_row(self, cur: sqlite3.Cursor, category_id: int) -> bool:
        cur.execute("DELETE FROM categories WHERE id=?", (int(category_id),))
        return cur.rowcount > 0

    def list_categories(self) -> list[Category]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT id, name, description, icon_name FROM categories ORDER BY name")
        rows = cur.fetchall()
        conn.close()
        return [Category(id=int(r[0]), name=str(r[1]), description=r[2], icon_name=r[3]) for r in rows]

    # ---------- Products ----------
    def insert_product(
        self,
        cur: sqlite3.Cursor,
        name: str,
        hsn_code: Optional[str],
        unit_price: float,
        tax_rate: float,
        description: Optional[str] = None,
        unit_id: Optional[int] = None,
        category_id: Optional[int] = None,
    ) -> int:
        cur.execute(
            """
            INSERT INTO products (name, hsn_code, unit_price, tax_rate, description, unit_id, category_id)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (name, hsn_code, float(unit_price), float(tax_rate), description, unit_id, category_id),
        )
        return int(cur.lastrowid)

    def update_product_row(
        self,
        cur: sqlite3.Cursor,
        product_id: int,
        name: str,
        hsn_code: Optional[str],
        unit_price: float,
        tax_rate: float,
        description: Optional[str],
        unit_id: Optional[int],
        category_id: Optional[int],
    ) -> bool:
        cur.execute(
            """
            UPDATE products
            SET name=?, hsn_code=?, unit_price=?, tax_rate=?, description=?, unit_id=?, category_id=?
            WHERE id=?
            """,
            (name, hsn_code, float(unit_price), float(tax_rate), description, unit_id, category_id, int(product_id)),
        )
        return cur.rowcount > 0

    def delete_product_row(self, cur: sqlite3.Cursor, product_id: int) -> bool:
        cur.execute("DELETE FROM products WHERE id=?", (int(product_id),))
        return cur.rowcount > 0

    def fetch_product(self, cur: sqlite3.Cursor, product_id: int) -> Optional[Product]:
        cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products WHERE id=?", (int(product_id),))
        r = cur.fetchone()
        return _product(r) if r else None

    def get_product_by_id(self, product_id: int) -> Optional[Product]:
        conn = self._conn()
        try:
            return self.fetch_product(conn.cursor(), product_id)
        finally:
            conn.close()

    def get_product_by_name(self, name: str) -> Optional[Product]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products WHERE name=?", (name,))
        r = cur.fetchone()
        conn.close()
        return _product(r) if r else None

    def list_products(self) -> list[Product]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products ORDER BY name")
        rows = cur.fetchall()
        conn.close()
        return [_product(r) for r in rows]

    def list_out_of_stock(self) -> list[Product]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products WHERE stock_quantity <= 0 ORDER BY name")
        rows = cur.fetchall()
        conn.close()
        return [_product(r) for r in rows]

    def change_stock(self, cur: sqlite3.Cursor, product_id: int, delta: int) -> Optional[int]:
        cur.execute(
            "UPDATE products SET stock_quantity = stock_quantity + ? WHERE id = ?",
            (int(delta), int(product_id)),
        )
        if cur.rowcount == 0:
            return None
        cur.execute("SELECT stock_quantity FROM products WHERE id=?", (int(product_id),))
        return int(cur.fetchone()[0])

    def append_stock_movement(
        self,
        cur: sqlite3.Cursor,
        datetime_iso: str,
        product_id: int,
        movement_type: str,
        qty_delta: int,
        stock_after: int,
        reference_type: str,
        reference_id: int,
        notes: Optional[str] = None,
    ) -> None:
        cur.execute(
            """
            INSERT INTO stock_movements (
                datetime, product_id, movement_type, qty_delta, stock_after, reference_type, reference_id, notes
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                datetime_iso,
                int(product_id),
                movement_type,
                int(qty_delta),
                int(stock_after),
                reference_type,
                int(reference_id),
                notes,
            ),
        )

    def stock_movements_for_product(self, product_id: int, limit: int = 100) -> list[StockMovement]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT id, datetime, product_id, movement_type, qty_delta, stock_after,
                   reference_type, reference_id, notes
            FROM stock_movements
            WHERE product_id = ?
            ORDER BY id DESC
            LIMIT ?
            """,
            (int(product_id), int(limit)),
        )
        rows = cur.fetchall()
        conn.close()
        return [StockMovement(*r) for r in rows]

    def stock_reconciliation(self) -> list[StockMismatch]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT p.id, p.name, p.stock_quantity,
                   COALESCE((SELECT SUM(pu.quantity) FROM purchases pu WHERE pu.product_id = p.id), 0)
                   - COALESCE((SELECT SUM(ii.quantity) FROM invoice_items ii WHERE ii.product_id = p.id), 0)
            FROM products p
            ORDER BY p.name
            """
        )
        rows = cur.fetchall()
        conn.close()
        return [StockMismatch(product_id=int(r[0]), product_name=str(r[1]), stored=int(r[2]), expected=int(r[3])) for r in rows]

    # ---------- Purchases ----------
    def insert_purchase(
        self, cur: sqlite3.Cursor, product_id: int, quantity: int, purchase_date: str, reference_invoice: Optional[str]
    ) -> int:
        cur.execute(
            """
            INSERT INTO purchases (product_id, quantity, purchase_date, reference_invoice)
            VALUES (?, ?, ?, ?)
            """,
            (int(product_id), int(quantity), purchase_date, reference_invoice),
        )
        return int(cur.lastrowid)

    def update_purchase_row(
        self,
        cur: sqlite3.Cursor,
        purchase_id: int,
        product_id: int,
        quantity: int,
        purchase_date: str,
        reference_invoice: Optional[str],
    ) -> bool:
        cur.execute(
            """
            UPDATE purchases
            SET product_id=?, quantity=?, purchase_date=?, reference_invoice=?
            WHERE id=?
            """,
            (int(product_id), int(quantity), purchase_date, reference_invoice, int(purchase_id)),
        )
        return cur.rowcount > 0

    def delete_purchase_row(self, cur: sqlite3.Cursor, purchase_id: int) -> bool:
        cur.execute("DELETE FROM purchases WHERE id=?", (int(purchase_id),))
        return cur.rowcount > 0

    def fetch_purchase(self, cur: sqlite3.Cursor, purchase_id: int) -> Optional[Purchase]:
        cur.execute(
            "SELECT id, product_id, quantity, purchase_date, reference_invoice FROM purchases WHERE id=?",
            (int(purchase_id),),
        )
        r = cur.fetchone()
        if not r:
            return None
        return Purchase(id=int(r[0]), product_id=int(r[1]), quantity=int(r[2]), purchase_date=str(r[3]), reference_invoice=r[4])

    def get_purchase(self, purchase_id: int) -> Optional[Purchase]:
        conn = self._conn()
        try:
            return self.fetch_purchase(conn.cursor(), purchase_id)
        finally:
            conn.close()

    def list_purchases_between(self, start_iso: str, end_iso: str) -> list[Purchase]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT id, product_id, quantity, purchase_date, reference_invoice
            FROM purchases
            WHERE purchase_date BETWEEN ? AND ?
            ORDER BY purchase_date DESC, id DESC
            """,
            (start_iso, end_iso),
        )
        rows = cur.fetchall()
        conn.close()
        return [
            Purchase(id=int(r[0]), product_id=int(r[1]), quantity=int(r[2]), purchase_date=str(r[3]), reference_invoice=r[4])
            for r in rows
        ]

    # ---------- Customers ----------
    def insert_customer(
        self,
        cur: sqlite3.Cursor,
        name: str,
        email: Optional[str],
        phone: Optional[str],
        gst_pan: Optional[str],
        billing_address: Optional[str],
        is_guest: bool = False,
    ) -> int:
        cur.execute(
            """
            INSERT INTO customers (name, email, phone, gst_pan, billing_address, is_guest)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (name, email, phone, gst_pan, billing_address, 1 if is_guest else 0),
        )
        return int(cur.lastrowid)

    def update_customer_row(
        self,
        cur: sqlite3.Cursor,
        customer_id: int,
        name: str,
        email: Optional[str],
        phone: Optional[str],
        gst_pan: Optional[str],
        billing_address: Optional[str],
    ) -> bool:
        cur.execute(
            """
            UPDATE customers
            SET name=?, email=?, phone=?, gst_pan=?, billing_address=?
            WHERE id=?
            """,
            (name, email, phone, gst_pan, billing_address, int(customer_id)),
        )
        return cur.rowcount > 0

    def delete_customer_row(self, cur: sqlite3.Cursor, customer_id: int) -> bool:
        cur.execute("DELETE FROM customers WHERE id=?", (int(customer_id),))
        return cur.rowcount > 0

    def fetch_customer(self, cur: sqlite3.Cursor, customer_id: int) -> Optional[Customer]:
        cur.execute(f"SELECT {CUSTOMER_COLUMNS} FROM customers WHERE id=?", (int(customer_id),))
        r = cur.fetchone()
        return _customer(r) if r else None

    def get_customer(self, customer_id: int) -> Optional[Customer]:
        conn = self._conn()
        try:
            return self.fetch_customer(conn.cursor(), customer_id)
        finally:
            conn.close()

    def list_customers(self) -> list[Customer]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {CUSTOMER_COLUMNS} FROM customers ORDER BY name")
        rows = cur.fetchall()
        conn.close()
        return [_customer(r) for r in rows]

    # ---------- Invoices ----------
    def insert_invoice(
        self, cur: sqlite3.Cursor, customer_id: Optional[int], invoice_number: str, invoice_date: str, notes: Optional[str]
    ) -> int:
        cur.execute(
            """
            INSERT INTO invoices (customer_id, invoice_number, invoice_date, notes, total_amount)
            VALUES (?, ?, ?, ?, 0)
            """,
            (customer_id, invoice_number, invoice_date, notes),
        )
        return int(cur.lastrowid)

    def update_invoice_row(
        self,
        cur: sqlite3.Cursor,
        invoice_id: int,
        customer_id: Optional[int],
        invoice_number: str,
        invoice_date: str,
        notes: Optional[str],
    ) -> bool:
        cur.execute(
            """
            UPDATE invoices
            SET customer_id=?, invoice_number=?, invoice_date=?, notes=?
            WHERE id=?
            """,
            (customer_id, invoice_number, invoice_date, notes, int(invoice_id)),
        )
        return cur.rowcount > 0

    def delete_invoice_row(self, cur: sqlite3.Cursor, invoice_id: int) -> bool:
        cur.execute("DELETE FROM invoices WHERE id=?", (int(invoice_id),))
        return cur.rowcount > 0

    def fetch_invoice(self, cur: sqlite3.Cursor, invoice_id: int) -> Optional[Invoice]:
        cur.execute(f"SELECT {INVOICE_COLUMNS} FROM invoices WHERE id=?", (int(invoice_id),))
        r = cur.fetchone()
        return _invoice(r) if r else None

    def get_invoice(self, invoice_id: int) -> Optional[Invoice]:
        conn = self._conn()
        try:
            return self.fetch_invoice(conn.cursor(), invoice_id)
        finally:
            conn.close()

    def write_invoice_total(self, cur: sqlite3.Cursor, invoice_id: int) -> Optional[float]:
        cur.execute(
            """
            UPDATE invoices
            SET total_amount = (
                SELECT COALESCE(SUM(quantity * unit_price * (1 + tax_rate)), 0)
                FROM invoice_items
                WHERE invoice_id = ?
            )
            WHERE id = ?
            """,
            (int(invoice_id), int(invoice_id)),
        )
        if cur.rowcount == 0:
            return None
        cur.execute("SELECT total_amount FROM invoices WHERE id=?", (int(invoice_id),))
        return float(cur.fetchone()[0])

    def last_invoice_number(self) -> Optional[str]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT invoice_number FROM invoices ORDER BY created_at DESC, id DESC LIMIT 1")
        r = cur.fetchone()
        conn.close()
        return str(r[0]) if r else None

    def list_invoices(self, limit: int, offset: int, search: Optional[str] = None) -> tuple[list[InvoiceListRow], int]:
        where = ""
        params: tuple = ()
        if search:
            where = "WHERE i.invoice_number LIKE ? OR c.name LIKE ?"
            pattern = f"%{search}%"
            params = (pattern, pattern)

        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT COUNT(*)
            FROM invoices i
            LEFT JOIN customers c ON c.id = i.customer_id
            {where}
            """,
            params,
        )
        total = int(cur.fetchone()[0])
        cur.execute(
            f"""
            SELECT i.id, i.invoice_number, i.invoice_date, c.name, i.total_amount
            FROM invoices i
            LEFT JOIN customers c ON c.id = i.customer_id
            {where}
            ORDER BY i.created_at DESC, i.id DESC
            LIMIT ? OFFSET ?
            """,
            params + (int(limit), int(offset)),
        )
        rows = cur.fetchall()
        conn.close()
        return [
            InvoiceListRow(id=int(r[0]), invoice_number=str(r[1]), invoice_date=str(r[2]), customer_name=r[3], total_amount=float(r[4]))
            for r in rows
        ], total

    # ---------- Invoice items ----------
    def insert_invoice_item(
        self, cur: sqlite3.Cursor, invoice_id: int, product_id: int, quantity: int, unit_price: float, tax_rate: float
    ) -> int:
        cur.execute(
            """
            INSERT INTO invoice_items (invoice_id, product_id, quantity, unit_price, tax_rate)
            VALUES (?, ?, ?, ?, ?)
            """,
            (int(invoice_id), int(product_id), int(quantity), float(unit_price), float(tax_rate)),
        )
        return int(cur.lastrowid)

    def update_invoice_item_row(
        self,
        cur: sqlite3.Cursor,
        item_id: int,
        invoice_id: int,
        product_id: int,
        quantity: int,
        unit_price: float,
        tax_rate: float,
    ) -> bool:
        cur.execute(
            """
            UPDATE invoice_items
            SET invoice_id=?, product_id=?, quantity=?, unit_price=?, tax_rate=?
            WHERE id=?
            """,
            (int(invoice_id), int(product_id), int(quantity), float(unit_price), float(tax_rate), int(item_id)),
        )
        return cur.rowcount > 0

    def delete_invoice_item_row(self, cur: sqlite3.Cursor, item_id: int) -> bool:
        cur.execute("DELETE FROM invoice_items WHERE id=?", (int(item_id),))
        return cur.rowcount > 0

    def fetch_invoice_item(self, cur: sqlite3.Cursor, item_id: int) -> Optional[InvoiceItem]:
        cur.execute(f"SELECT {ITEM_COLUMNS} FROM invoice_items WHERE id=?", (int(item_id),))
        r = cur.fetchone()
        return _item(r) if r else None

    def fetch_items_for_invoice(self, cur: sqlite3.Cursor, invoice_id: int) -> list[InvoiceItem]:
        cur.execute(f"SELECT {ITEM_COLUMNS} FROM invoice_items WHERE invoice_id=? ORDER BY id", (int(invoice_id),))
        return [_item(r) for r in cur.fetchall()]

    def invoice_items_for_invoice(self, invoice_id: int) -> list[InvoiceItem]:
        conn = self._conn()
        try:
            return self.fetch_items_for_invoice(conn.cursor(), invoice_id)
        finally:
            conn.close()

    def invoice_lines_for_invoice(self, invoice_id: int) -> list[tuple]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT ii.id, p.name, p.hsn_code, u.abbreviation, ii.quantity, ii.unit_price, ii.tax_rate
            FROM invoice_items ii
            JOIN products p ON p.id = ii.product_id
            LEFT JOIN units u ON u.id = p.unit_id
            WHERE ii.invoice_id = ?
            ORDER BY ii.id
            """,
            (int(invoice_id),),
        )
        rows = cur.fetchall()
        conn.close()
        return rows

    # ---------- Company ----------
    def get_company_details(self) -> Optional[CompanyDetails]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {COMPANY_COLUMNS} FROM company_details WHERE id = 1")
        r = cur.fetchone()
        conn.close()
        return CompanyDetails(*r) if r else None

    def upsert_company_details(self, cur: sqlite3.Cursor, details: CompanyDetails) -> None:
        cur.execute(
            f"""
            INSERT INTO company_details (id, {COMPANY_COLUMNS})
            VALUES (1, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name=excluded.name, slogan=excluded.slogan, address=excluded.address, gstin=excluded.gstin,
                account_name=excluded.account_name, account_number=excluded.account_number,
                account_type=excluded.account_type, bank_name=excluded.bank_name, ifsc_code=excluded.ifsc_code
            """,
            (
                details.name,
                details.slogan,
                details.address,
                details.gstin,
                details.account_name,
                details.account_number,
                details.account_type,
                details.bank_name,
                details.ifsc_code,
            ),
        )

    # ---------- Reports ----------
    def combined_report(
        self, start_iso: str, end_iso: str, transaction_type: str, limit: Optional[int] = None, offset: int = 0
    ) -> list[ReportRow]:
        params = {"start": start_iso, "end": end_iso, "type": transaction_type}
        sql = COMBINED_TRANSACTIONS + """
            SELECT transaction_id, transaction_date, transaction_type, reference_number, product_name, quantity_change
            FROM combined
            ORDER BY transaction_date DESC, product_name ASC, transaction_type ASC, transaction_id ASC
        """
        if limit is not None:
            sql += " LIMIT :limit OFFSET :offset"
            params["limit"] = int(limit)
            params["offset"] = int(offset)

        conn = self._conn()
        cur = conn.cursor()
        cur.execute(sql, params)
        rows = cur.fetchall()
        conn.close()
        return [
            ReportRow(
                transaction_id=int(r[0]),
                transaction_date=str(r[1]),
                transaction_type=str(r[2]),
                reference_number=r[3],
                product_name=str(r[4]),
                quantity_change=int(r[5]),
            )
            for r in rows
        ]

    def combined_report_count(self, start_iso: str, end_iso: str, transaction_type: str) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            COMBINED_TRANSACTIONS + "SELECT COUNT(*) FROM combined",
            {"start": start_iso, "end": end_iso, "type": transaction_type},
        )
        count = int(cur.fetchone()[0])
        conn.close()
        return count

    def invoice_totals_summary(self) -> tuple[int, float]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*), COALESCE(SUM(total_amount), 0) FROM invoices")
        count, revenue = cur.fetchone()
        conn.close()
        return int(count), float(revenue)

    def count_active_customers(self) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) FROM customers WHERE is_guest = 0")
        count = int(cur.fetchone()[0])
        conn.close()
        return count

    def total_stock_on_hand(self) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT COALESCE(SUM(stock_quantity), 0) FROM products")
        total = int(cur.fetchone()[0])
        conn.close()
        return total

    def monthly_sales_totals_since(self, start_iso: str) -> dict[str, float]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT substr(invoice_date,1,7) AS ym, COALESCE(SUM(total_amount),0)
            FROM invoices
            WHERE invoice_date >= ?
            GROUP BY ym
            """,
            (start_iso,),
        )
        rows = cur.fetchall()
        conn.close()
        return {str(r[0]): float(r[1]) for r in rows}

    def monthly_purchase_value_since(self, start_iso: str) -> dict[str, float]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT substr(pu.purchase_date,1,7) AS ym, COALESCE(SUM(pu.quantity * p.unit_price),0)
            FROM purchases pu
            JOIN products p ON p.id = pu.product_id
            WHERE pu.purchase_date >= ?
            GROUP BY ym
            """,
            (start_iso,),
        )
        rows = cur.fetchall()
        conn.close()
        return {str(r[0]): float(r[1]) for r in rows}
