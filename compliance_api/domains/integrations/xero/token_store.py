import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Optional

from compliance_api.core.encryption import TokenCipher, TokenDecryptionError
from compliance_api.shared.exceptions import ReauthorizationRequiredError

from .models import (
    AuthorizedTenant,
    ConnectionStatus,
    XeroConnectionRecord,
    XeroTokenResponse,
)

if TYPE_CHECKING:
    from prisma import Prisma

logger = logging.getLogger(__name__)


class TokenStore:
    """Persists Xero connections and authorized tenants, encrypting secrets."""

    def __init__(self, db: "Prisma", cipher: TokenCipher):
        self.db = db
        self.cipher = cipher

    async def get_connection(self, company_id: str) -> Optional[XeroConnectionRecord]:
        """
        Load the company's connection with secrets decrypted.

        Raises:
            ReauthorizationRequiredError: If stored secrets cannot be decrypted
        """
        row = await self.db.xeroconnection.find_unique(where={"companyId": company_id})
        if not row:
            return None
        return self._to_record(row)

    async def save_client_credentials(
        self, company_id: str, client_id: str, client_secret: str
    ) -> None:
        """Store per-company OAuth app credentials ahead of consent."""
        encrypted_secret = self.cipher.encrypt(client_secret)
        await self.db.xeroconnection.upsert(
            where={"companyId": company_id},
            data={
                "create": {
                    "companyId": company_id,
                    "clientId": client_id,
                    "encryptedClientSecret": encrypted_secret,
                    "status": ConnectionStatus.PENDING.value,
                },
                "update": {
                    "clientId": client_id,
                    "encryptedClientSecret": encrypted_secret,
                },
            },
        )

    async def save_tokens(
        self,
        company_id: str,
        token_response: XeroTokenResponse,
        refresh_attempts: int = 0,
    ) -> XeroConnectionRecord:
        """Persist a fresh token pair and mark the connection active."""
        now = datetime.now(timezone.utc)
        token_data = {
            "encryptedAccessToken": self.cipher.encrypt(token_response.access_token),
            "encryptedRefreshToken": self.cipher.encrypt(token_response.refresh_token),
            "accessTokenExpiresAt": now + timedelta(seconds=token_response.expires_in),
            "status": ConnectionStatus.ACTIVE.value,
            "lastError": None,
            "lastRefreshedAt": now,
            "refreshAttempts": refresh_attempts,
        }
        row = await self.db.xeroconnection.upsert(
            where={"companyId": company_id},
            data={
                "create": {"companyId": company_id, **token_data},
                "update": token_data,
            },
        )
        return self._to_record(row)

    async def mark_expired(self, company_id: str, error: str) -> None:
        await self.db.xeroconnection.update(
            where={"companyId": company_id},
            data={
                "status": ConnectionStatus.EXPIRED.value,
                "lastError": error,
            },
        )

    async def record_refresh_error(
        self, company_id: str, error: str, refresh_attempts: int
    ) -> None:
        """Record a failed refresh without changing the connection status."""
        await self.db.xeroconnection.update(
            where={"companyId": company_id},
            data={"lastError": error, "refreshAttempts": refresh_attempts},
        )

    async def mark_revoked(self, company_id: str) -> None:
        await self.db.xeroconnection.update(
            where={"companyId": company_id},
            data={
                "status": ConnectionStatus.REVOKED.value,
                "encryptedAccessToken": None,
                "encryptedRefreshToken": None,
                "accessTokenExpiresAt": None,
            },
        )

    async def get_authorized_tenants(self, company_id: str) -> list[AuthorizedTenant]:
        """Authorized tenants in original fetch order."""
        rows = await self.db.xeroauthorizedtenant.find_many(
            where={"companyId": company_id},
            order={"position": "asc"},
        )
        return [
            AuthorizedTenant(
                company_id=row.companyId,
                tenant_id=row.tenantId,
                display_name=row.displayName,
                tenant_type=row.tenantType,
                connection_reference_id=row.connectionReferenceId,
            )
            for row in rows
        ]

    async def replace_authorized_tenants(
        self, company_id: str, tenants: list[AuthorizedTenant]
    ) -> None:
        """
        Replace the company's tenant set in a single transaction.

        Readers see either the previous set or the new one, never a mix.
        """
        async with self.db.tx() as transaction:
            await transaction.xeroauthorizedtenant.delete_many(
                where={"companyId": company_id}
            )
            if tenants:
                await transaction.xeroauthorizedtenant.create_many(
                    data=[
                        {
                            "companyId": company_id,
                            "tenantId": tenant.tenant_id,
                            "displayName": tenant.display_name,
                            "tenantType": tenant.tenant_type,
                            "connectionReferenceId": tenant.connection_reference_id,
                            "position": position,
                        }
                        for position, tenant in enumerate(tenants)
                    ],
                    skip_duplicates=True,
                )
        logger.info(
            f"Stored {len(tenants)} authorized Xero tenant(s) for company {company_id}"
        )

    async def clear_authorized_tenants(self, company_id: str) -> None:
        await self.replace_authorized_tenants(company_id, [])

    def _to_record(self, row: Any) -> XeroConnectionRecord:
        try:
            client_secret = self.cipher.decrypt(row.encryptedClientSecret)
            access_token = self.cipher.decrypt(row.encryptedAccessToken)
            refresh_token = self.cipher.decrypt(row.encryptedRefreshToken)
        except TokenDecryptionError:
            logger.error(
                f"Stored Xero credentials for company {row.companyId} "
                "could not be decrypted"
            )
            raise ReauthorizationRequiredError(
                "Stored Xero credentials are unreadable. Reconnect to Xero."
            )

        return XeroConnectionRecord(
            company_id=row.companyId,
            client_id=row.clientId,
            client_secret=client_secret,
            access_token=access_token,
            refresh_token=refresh_token,
            access_token_expires_at=row.accessTokenExpiresAt,
            status=ConnectionStatus(row.status),
            last_error=row.lastError,
            last_refreshed_at=row.lastRefreshedAt,
            refresh_attempts=row.refreshAttempts or 0,
            created_at=row.createdAt,
        )
