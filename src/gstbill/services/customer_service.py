from __future__ import annotations

import logging
from typing import Callable, Optional

from gstbill.domain.errors import NotFoundError
from gstbill.domain.models import CompanyDetails, Customer
from gstbill.repositories.unit_of_work import SqliteUnitOfWork, UnitOfWork
from gstbill.services.validation import check_gst_pan, check_gstin, clean_text, require_text

log = logging.getLogger(__name__)


class CustomerService:
    def __init__(self, repo, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))

    def list_customers(self) -> list[Customer]:
        return self.repo.list_customers()

    def get_customer(self, customer_id: int) -> Customer:
        c = self.repo.get_customer(int(customer_id))
        if not c:
            raise NotFoundError("Customer not found.")
        return c

    def add_customer(
        self,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        gst_pan: Optional[str] = None,
        billing_address: Optional[str] = None,
        is_guest: bool = False,
    ) -> int:
        with self.uow_factory() as uow:
            return self.insert(uow.cur, name, email, phone, gst_pan, billing_address, is_guest)

    def insert(self, cur, name, email=None, phone=None, gst_pan=None, billing_address=None, is_guest=False) -> int:
        """Insert on an already open transaction (used when an invoice creates its customer)."""
        name = require_text(name, "Customer name")
        cid = self.repo.insert_customer(
            cur,
            name,
            clean_text(email),
            clean_text(phone),
            check_gst_pan(gst_pan),
            clean_text(billing_address),
            bool(is_guest),
        )
        log.info("customer_created customer_id=%s", cid)
        return cid

    def update_customer(
        self,
        customer_id: int,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        gst_pan: Optional[str] = None,
        billing_address: Optional[str] = None,
    ) -> None:
        name = require_text(name, "Customer name")
        gst_pan = check_gst_pan(gst_pan)
        with self.uow_factory() as uow:
            updated = self.repo.update_customer_row(
                uow.cur, int(customer_id), name, clean_text(email), clean_text(phone), gst_pan, clean_text(billing_address)
            )
            if not updated:
                raise NotFoundError("Customer not found.")

    def delete_customer(self, customer_id: int) -> None:
        """Fails with ConstraintViolationError while any invoice references the customer."""
        with self.uow_factory() as uow:
            if not self.repo.delete_customer_row(uow.cur, int(customer_id)):
                raise NotFoundError("Customer not found.")
        log.info("customer_deleted customer_id=%s", customer_id)


class CompanyService:
    def __init__(self, repo, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))

    def get_company_details(self) -> Optional[CompanyDetails]:
        return self.repo.get_company_details()

    def save_company_details(
        self,
        name: Optional[str] = None,
        slogan: Optional[str] = None,
        address: Optional[str] = None,
        gstin: Optional[str] = None,
        account_name: Optional[str] = None,
        account_number: Optional[str] = None,
        account_type: Optional[str] = None,
        bank_name: Optional[str] = None,
        ifsc_code: Optional[str] = None,
    ) -> CompanyDetails:
        details = CompanyDetails(
            name=clean_text(name),
            slogan=clean_text(slogan),
            address=clean_text(address),
            gstin=check_gstin(gstin),
            account_name=clean_text(account_name),
            account_number=clean_text(account_number),
            account_type=clean_text(account_type),
            bank_name=clean_text(bank_name),
            ifsc_code=clean_text(ifsc_code),
        )
        with self.uow_factory() as uow:
            self.repo.upsert_company_details(uow.cur, details)
        return details
