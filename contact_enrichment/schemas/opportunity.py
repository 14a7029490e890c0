from pydantic import BaseModel, ConfigDict, Field

from contact_enrichment.schemas.contact import ContactInfo


class Opportunity(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    url: str
    domain: str
    is_premium: bool = Field(default=False, alias="isPremium")
    domain_authority: int = Field(default=0, alias="domainAuthority")
    contact_info: ContactInfo | None = Field(default=None, alias="contactInfo")

    @property
    def base_url(self) -> str:
        return self.url or f"https://{self.domain}"
