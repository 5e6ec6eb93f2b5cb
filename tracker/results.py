"""`{data, error}` result shapes returned by every service operation.

Service operations never raise for expected failures. They return a dict with
``data`` and ``error`` keys; ``error`` is ``None`` on success or a dict with at
least a ``message`` key.
"""

from typing import Any

NOT_AUTHENTICATED = "Utilizador não autenticado"
MISSING_ID = "ID do treino/registo não fornecido"
INVALID_AMOUNT = "Quantidade inválida"
WORKOUT_NOT_FOUND = "Treino não encontrado."
EXERCISE_NOT_FOUND = "Exercício não encontrado."
WORKOUT_NAME_REQUIRED = "O nome do treino é obrigatório."
EXERCISE_NAME_REQUIRED = "Nome do exercício é obrigatório"
INVALID_EXERCISE_TYPE = "Tipo de exercício inválido"
INVALID_REPS = "Número de repetições deve ser maior que 0"
INVALID_WEIGHT = "Peso deve ser um número positivo"
UNKNOWN_SETTING = "Definição desconhecida"
INVALID_EMAIL = "Email inválido"
INVALID_PASSWORD = "A palavra-passe deve ter pelo menos 6 caracteres"
REMINDER_TITLE_REQUIRED = "Por favor, insira um título para o lembrete."
REMINDER_NOT_FOUND = "Lembrete não encontrado."
REMINDERS_SAVE_FAILED = "Não foi possível guardar os lembretes."
INVALID_TIME = "Hora inválida"
INVALID_FREQUENCY = "Frequência inválida"
UNEXPECTED_ERROR = "Ocorreu um erro inesperado."

# Fallbacks used when a store error carries no message
CREATE_WORKOUT_FAILED = "Erro ao criar treino."
DELETE_WORKOUT_FAILED = "Erro ao apagar treino."
LOAD_WORKOUT_FAILED = "Erro ao carregar treino."
UPDATE_EXERCISE_FAILED = "Erro ao atualizar exercício."
DELETE_EXERCISE_FAILED = "Erro ao apagar exercício."
WATER_LOG_FAILED = "Não foi possível registar o consumo de água."
WATER_LOAD_FAILED = "Não foi possível carregar o consumo de água."
SETTINGS_FAILED = "Não foi possível guardar as definições."
PROFILE_FAILED = "Não foi possível carregar o perfil."


def ok(data: Any = None) -> dict:
    """Successful result."""
    return {"data": data, "error": None}


def fail(message: str, data: Any = None, **extra: Any) -> dict:
    """Locally produced failure (auth-missing, validation, not-found)."""
    error = {"message": message}
    error.update(extra)
    return {"data": data, "error": error}


def not_authenticated() -> dict:
    return fail(NOT_AUTHENTICATED)


def from_exception(exc: Exception, fallback: str, data: Any = None) -> dict:
    """Normalise an exception caught at a service boundary.

    Store and auth errors pass through with their code/details; a localized
    fallback replaces an empty message. Anything else becomes a generic error.
    """
    to_dict = getattr(exc, "to_dict", None)
    if callable(to_dict):
        error = to_dict()
        if not error.get("message"):
            error["message"] = fallback
        return {"data": data, "error": error}

    return fail(UNEXPECTED_ERROR, data=data, details=str(exc) or None)
