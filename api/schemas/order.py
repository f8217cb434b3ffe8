"""
Order checkout request schemas
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field, NonNegativeInt, PositiveInt

from order_state import CustomerDetails, OrderSelection


class CustomerDetailsRequest(BaseModel):
    name: str = Field("", description="Full name; first word is the first name")
    email: str = Field("", description="Contact email (required to complete the order)")
    phone: str = ""
    business_name: str = ""
    province_code: Optional[str] = None
    province_name: Optional[str] = None
    city: Optional[str] = None
    accepted_terms: bool = Field(False, description="Terms of service accepted")

    def to_details(self) -> CustomerDetails:
        return CustomerDetails(
            name=self.name,
            email=self.email,
            phone=self.phone,
            business_name=self.business_name,
            province_code=self.province_code,
            province_name=self.province_name,
            city=self.city,
            accepted_terms=self.accepted_terms,
        )


class OrderSelectionRequest(BaseModel):
    """Raw order selections as collected by the order flow"""

    domain: Optional[str] = Field(None, description="Chosen domain (e.g. 'acme.com')")
    template_id: Optional[str] = None
    template_name: Optional[str] = None
    package_id: Optional[str] = Field(None, description="Package; the default package is used when omitted")
    package_name: Optional[str] = Field(None, description="Display name; the catalog name decides the billing mode")
    subscription_years: Optional[PositiveInt] = None
    add_ons: Dict[str, NonNegativeInt] = Field(default_factory=dict, description="Add-on key -> quantity")
    subscription_add_ons: Dict[str, bool] = Field(default_factory=dict, description="Subscription add-on key -> selected")
    promo_code: str = ""
    details: CustomerDetailsRequest = Field(default_factory=CustomerDetailsRequest)

    def to_selection(self) -> OrderSelection:
        domain = (self.domain or "").strip() or None
        return OrderSelection(
            domain=domain,
            selected_template_id=self.template_id,
            selected_template_name=self.template_name,
            selected_package_id=self.package_id,
            selected_package_name=self.package_name,
            subscription_years=self.subscription_years,
            add_ons={k: v for k, v in self.add_ons.items() if v > 0},
            subscription_add_ons=dict(self.subscription_add_ons),
            promo_code=self.promo_code.strip(),
            details=self.details.to_details(),
        )


class CheckoutRequest(OrderSelectionRequest):
    user_id: Optional[str] = Field(None, description="Signed-in user, recorded as the audit actor")


class DomainSuggestionsRequest(BaseModel):
    query: Optional[str] = Field(None, description="Keyword or domain typed by the customer")
