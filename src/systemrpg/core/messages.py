"""Localized message lookup.

Error and status text returned to API clients is resolved through a
MessageSource so the same failure can be reported in the caller's language.
The locale is negotiated from the ``Accept-Language`` request header.
"""

from systemrpg.core.config import get_settings

MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "auth.unauthorized": "Authentication is required to access this resource",
        "auth.forbidden": "You do not have permission to access this resource",
        "auth.token.missing": "Missing or malformed Authorization header",
        "auth.token.empty": "Token must not be empty",
        "auth.token.invalid": "Invalid token",
        "auth.token.expired": "Token has expired",
        "auth.token.revoked": "Token has been revoked",
        "auth.token.validation.error": "Token could not be validated",
        "auth.introspect.error": "Token introspection failed",
        "auth.refresh.token.invalid": "Invalid refresh token",
        "auth.refresh.error": "Token refresh failed",
        "auth.credentials.invalid": "Invalid username or password",
        "auth.user.inactive": "User account is inactive",
        "auth.logout.success": "Logout completed successfully",
        "auth.logout.error": "Logout failed",
        "auth.logout.header.required": "Authorization header is required",
        "auth.revoke.success": "Token revoked",
        "error.validation": "Request validation failed",
        "error.not_found": "Resource not found",
        "error.internal": "An unexpected error occurred",
    },
    "pt-BR": {
        "auth.unauthorized": "Autenticação necessária para acessar este recurso",
        "auth.forbidden": "Você não tem permissão para acessar este recurso",
        "auth.token.missing": "Cabeçalho Authorization ausente ou malformado",
        "auth.token.empty": "O token não pode ser vazio",
        "auth.token.invalid": "Token inválido",
        "auth.token.expired": "Token expirado",
        "auth.token.revoked": "Token revogado",
        "auth.token.validation.error": "Não foi possível validar o token",
        "auth.introspect.error": "Falha na introspecção do token",
        "auth.refresh.token.invalid": "Refresh token inválido",
        "auth.refresh.error": "Falha ao renovar o token",
        "auth.credentials.invalid": "Usuário ou senha inválidos",
        "auth.user.inactive": "Usuário inativo",
        "auth.logout.success": "Logout realizado com sucesso",
        "auth.logout.error": "Falha ao realizar logout",
        "auth.logout.header.required": "O cabeçalho Authorization é obrigatório",
        "auth.revoke.success": "Token revogado",
        "error.validation": "Falha na validação da requisição",
        "error.not_found": "Recurso não encontrado",
        "error.internal": "Ocorreu um erro inesperado",
    },
}


class MessageSource:
    """Resolve message keys to localized text."""

    def __init__(
        self,
        default_locale: str | None = None,
        catalogs: dict[str, dict[str, str]] | None = None,
    ) -> None:
        self._catalogs = catalogs if catalogs is not None else MESSAGES
        self.default_locale = default_locale or get_settings().default_locale
        # Primary language tag -> catalog locale, e.g. "pt" -> "pt-BR"
        self._by_language = {}
        for locale in self._catalogs:
            self._by_language.setdefault(locale.split("-")[0].lower(), locale)

    @property
    def supported_locales(self) -> list[str]:
        return list(self._catalogs)

    def resolve_locale(self, accept_language: str | None) -> str:
        """Pick the best supported locale for an ``Accept-Language`` value.

        Args:
            accept_language: Raw header value, e.g. ``"pt-BR,pt;q=0.9,en;q=0.8"``.

        Returns:
            A supported locale, falling back to the default locale.
        """
        if not accept_language:
            return self.default_locale

        candidates: list[tuple[float, int, str]] = []
        for position, part in enumerate(accept_language.split(",")):
            tag, _, params = part.strip().partition(";")
            tag = tag.strip()
            if not tag or tag == "*":
                continue
            quality = 1.0
            params = params.strip()
            if params.startswith("q="):
                try:
                    quality = float(params[2:])
                except ValueError:
                    continue
            if quality <= 0:
                continue
            candidates.append((-quality, position, tag))

        for _, _, tag in sorted(candidates):
            for locale in self._catalogs:
                if locale.lower() == tag.lower():
                    return locale
            match = self._by_language.get(tag.split("-")[0].lower())
            if match:
                return match
        return self.default_locale

    def get(self, key: str, locale: str | None = None, **params: object) -> str:
        """Look up a message, formatting any named parameters.

        Unknown keys resolve to the key itself so a missing translation never
        raises on an error path.
        """
        catalog = self._catalogs.get(locale or self.default_locale) or self._catalogs.get(
            self.default_locale, {}
        )
        template = catalog.get(key)
        if template is None:
            template = self._catalogs.get(self.default_locale, {}).get(key, key)
        if params:
            try:
                return template.format(**params)
            except (KeyError, IndexError, ValueError):
                return template
        return template
