from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

AccountIdInput = list[str | int | None] | str | int | None


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BulkDeleteRequest(BaseModel):
    """
    Selection from the admin dashboard.

    Older dashboard builds post the ids under different field names; the first
    one present wins, a single value is treated as a one-element selection.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    account_ids: AccountIdInput = Field(None, alias="accountIds")
    discord_ids: AccountIdInput = Field(None, alias="discordIds")
    discord_ids_list: AccountIdInput = Field(None, alias="discordIds[]")
    selected_discord_ids: AccountIdInput = Field(None, alias="selectedDiscordIds")
    selected_discord_ids_list: AccountIdInput = Field(None, alias="selectedDiscordIds[]")
    user_ids: AccountIdInput = Field(None, alias="userIds")
    user_ids_list: AccountIdInput = Field(None, alias="userIds[]")

    def selected_ids(self) -> AccountIdInput:
        for value in (
            self.account_ids,
            self.discord_ids,
            self.discord_ids_list,
            self.selected_discord_ids,
            self.selected_discord_ids_list,
            self.user_ids,
            self.user_ids_list,
        ):
            if value is not None and value != "":
                return value
        return None


class BulkDeleteResponse(CamelModel):
    status: Literal["completed", "no_selection"]
    users_processed: int = 0
    keys_removed: int = 0
    session_entries_removed: int = 0
    profiles_removed: int = 0
    failed_account_ids: list[str] = Field(default_factory=list)


class GeneratePaidKeyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    discord_id: str | int | None = Field(None, alias="discordId")
    account_id: str | int | None = Field(None, alias="accountId")
    plan: str | None = None

    def selected_id(self) -> str:
        for value in (self.account_id, self.discord_id):
            if value is not None and str(value).strip():
                return str(value).strip()
        return ""


class GeneratePaidKeyResponse(CamelModel):
    account_id: str
    generated: int = 1
    generated_plan: str
    generated_token: str
    expires_at: str
    expires_at_ms: int
