from app.security.rules import RULES, AuthContext, Rule, RuleSet, RuleRequest, id_owned_by

__all__ = ["RULES", "AuthContext", "Rule", "RuleSet", "RuleRequest", "id_owned_by"]
