"""Request bodies of the edition API"""
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

class RecordCreationRequest(_CamelModel):
    """Edition created from the owner's wallet, submitted for recording"""
    tx_hash: str = Field(..., alias='txHash', min_length=1)
    price: Optional[int] = Field(None, ge=0, description="Unit price in wei")
    duration_days: Optional[int] = Field(None, alias='durationDays')
    max_supply: Optional[int] = Field(0, alias='maxSupply')
    rarity: Optional[int] = Field(None, description="On-chain rarity value; the chain's value wins")

class CreateEditionRequest(_CamelModel):
    """Edition created by the server through the chain gateway"""
    duration_days: Optional[int] = Field(None, alias='durationDays')
    max_supply: Optional[int] = Field(0, alias='maxSupply')

class MintRecordRequest(_CamelModel):
    tx_hash: str = Field(..., alias='txHash', min_length=1)
    quantity: int = Field(1, ge=1)
    minter_address: Optional[str] = Field(None, alias='minterAddress')

class MintRequest(_CamelModel):
    quantity: int = Field(1, ge=1)
    minter_address: Optional[str] = Field(None, alias='minterAddress')
    payment_value: Optional[int] = Field(None, alias='paymentValue', ge=0)
