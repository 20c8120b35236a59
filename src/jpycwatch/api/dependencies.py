"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends

from jpycwatch.config.settings import Settings, get_settings
from jpycwatch.core.error_handler import ErrorClassifier, get_error_classifier
from jpycwatch.services.onchain.data_service import OnChainDataService, get_onchain_service
from jpycwatch.services.pricing.price_service import PriceService, get_price_service

SettingsDep = Annotated[Settings, Depends(get_settings)]
OnChainServiceDep = Annotated[OnChainDataService, Depends(get_onchain_service)]
PriceServiceDep = Annotated[PriceService, Depends(get_price_service)]
ErrorClassifierDep = Annotated[ErrorClassifier, Depends(get_error_classifier)]
