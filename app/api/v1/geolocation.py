from fastapi import APIRouter, Depends

from app.core.deps import ClientContext, get_client_context, get_geolocation_resolver
from app.schemas.geo import GeolocationIn, GeolocationResult
from app.services.geolocation import GeolocationResolver

router = APIRouter()


@router.post("", response_model=GeolocationResult)
async def get_geolocation(
    payload: GeolocationIn,
    client: ClientContext = Depends(get_client_context),
    resolver: GeolocationResolver = Depends(get_geolocation_resolver),
):
    ip_address = payload.ip_address
    if ip_address in (None, "", "current"):
        ip_address = client.ip_address
    return await resolver.resolve(ip_address)
