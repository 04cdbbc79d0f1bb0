from fastapi.security import HTTPBearer

# HTTP Bearer authentication scheme shared by every sub-application
bearer_account = HTTPBearer(scheme_name="Account HTTPBearer")
