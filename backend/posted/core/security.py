from fastapi.security import OAuth2PasswordBearer

# This tells FastAPI to look for a token in the "Authorization" header
# with the value "Bearer <token>". The tokenUrl is not used for validation,
# but is required for OpenAPI spec compliance.
# auto_error is off so a missing token surfaces as AuthenticationRequired,
# rendered like every other application error.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token", auto_error=False)
