"""Concept fallback tables for each reconstructed statement.

Every output field maps to an ordered tuple of concept names; the first
concept with a fact for the period wins. Industry-specific tags (banks) are
appended after the standard tags, so adding a fallback is a table edit.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple

from filing_valuation.domain.models.amount import MISSING, Amount
from filing_valuation.domain.models.financials import BALANCE, CASH_FLOW, INCOME

USD = "USD"
SHARES = "shares"
USD_PER_SHARE = "USD/shares"

FLOW = "flow"  # additive over a period
POSITION = "position"  # point-in-time value
PER_SHARE = "per_share"  # reported per share, never summed or differenced


@dataclass(frozen=True)
class FieldSpec:
    name: str
    concepts: Tuple[str, ...]
    kind: str = FLOW
    unit: str = USD
    non_negative: bool = False

    @property
    def additive(self) -> bool:
        return self.kind == FLOW


@dataclass(frozen=True)
class StatementTemplate:
    statement_type: str
    anchors: Tuple[str, ...]
    fields: Tuple[FieldSpec, ...]
    derived: Mapping[str, Callable[[Mapping[str, Amount]], Amount]]

    @property
    def instant(self) -> bool:
        return all(spec.kind != FLOW for spec in self.fields)

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(spec.name for spec in self.fields) + tuple(self.derived)

    @property
    def additive_fields(self) -> Tuple[str, ...]:
        names = [spec.name for spec in self.fields if spec.additive]
        return tuple(names) + tuple(self.derived)

    @property
    def per_share_fields(self) -> Tuple[str, ...]:
        return tuple(spec.name for spec in self.fields if spec.kind == PER_SHARE)

    @property
    def non_negative_fields(self) -> Tuple[str, ...]:
        return tuple(spec.name for spec in self.fields if spec.non_negative)

    def spec(self, name: str) -> Optional[FieldSpec]:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    def apply_derived(self, values: Dict[str, Amount]) -> Dict[str, Amount]:
        return {name: rule(values) for name, rule in self.derived.items()}


def _chain(standard: Sequence[str], fallbacks: Mapping[str, Sequence[str]], name: str) -> Tuple[str, ...]:
    return tuple(standard) + tuple(c for c in fallbacks.get(name, ()) if c not in standard)


# ----------------------------
# Income statement
# ----------------------------

INCOME_CONCEPTS: Dict[str, Tuple[str, ...]] = {
    "revenue": (
        "RevenueFromContractWithCustomerExcludingAssessedTax",
        "Revenues",
        "SalesRevenueNet",
        "RevenueFromContractWithCustomerIncludingAssessedTax",
    ),
    "cost_of_revenue": ("CostOfGoodsAndServicesSold", "CostOfRevenue", "CostOfGoodsSold"),
    "gross_profit": ("GrossProfit",),
    "operating_expenses": ("OperatingExpenses", "CostsAndExpenses"),
    "selling_general_administrative": ("SellingGeneralAndAdministrativeExpense",),
    "research_development": ("ResearchAndDevelopmentExpense",),
    "operating_income": ("OperatingIncomeLoss",),
    "interest_expense": ("InterestExpense",),
    "interest_income": ("InvestmentIncomeInterest",),
    "other_non_operating_income": ("NonoperatingIncomeExpense", "OtherNonoperatingIncomeExpense"),
    "income_before_tax": (
        "IncomeLossFromContinuingOperationsBeforeIncomeTaxesExtraordinaryItemsNoncontrollingInterest",
        "IncomeLossFromContinuingOperationsBeforeIncomeTaxesMinorityInterestAndIncomeLossFromEquityMethodInvestments",
    ),
    "income_tax_expense": ("IncomeTaxExpenseBenefit",),
    "net_income": ("NetIncomeLoss", "ProfitLoss"),
    "net_income_continuing_ops": (
        "IncomeLossFromContinuingOperations",
        "IncomeLossFromContinuingOperationsIncludingPortionAttributableToNoncontrollingInterest",
    ),
    "depreciation_amortization": ("DepreciationDepletionAndAmortization", "DepreciationAndAmortization"),
    "eps": ("EarningsPerShareBasic",),
    "eps_diluted": ("EarningsPerShareDiluted",),
}

BANK_INCOME_CONCEPTS: Dict[str, Tuple[str, ...]] = {
    "revenue": (
        "InterestAndDividendIncomeOperating",
        "InterestIncomeOperating",
        "RevenuesNetOfInterestExpense",
        "NoninterestIncome",
    ),
    "cost_of_revenue": ("InterestExpense", "InterestExpenseOperating"),
    "operating_expenses": ("NoninterestExpense", "NoninterestExpenseTotal"),
    "selling_general_administrative": ("PersonnelExpenses", "LaborAndRelatedExpense", "EmployeeBenefitsAndCompensation"),
    "operating_income": ("IncomeFromContinuingOperationsBeforeIncomeTaxes", "PreTaxIncome"),
    "net_income": ("NetIncomeLossAvailableToCommonStockholdersBasic", "NetIncomeLossAttributableToParent"),
}

_INCOME_KINDS = {"eps": PER_SHARE, "eps_diluted": PER_SHARE}
_INCOME_NON_NEGATIVE = {
    "revenue",
    "cost_of_revenue",
    "operating_expenses",
    "selling_general_administrative",
    "research_development",
}


def _ebitda(values: Mapping[str, Amount]) -> Amount:
    return values.get("operating_income", MISSING) + values.get("depreciation_amortization", MISSING)


INCOME_TEMPLATE = StatementTemplate(
    statement_type=INCOME,
    anchors=_chain(INCOME_CONCEPTS["revenue"], BANK_INCOME_CONCEPTS, "revenue"),
    fields=tuple(
        FieldSpec(
            name=name,
            concepts=_chain(concepts, BANK_INCOME_CONCEPTS, name),
            kind=_INCOME_KINDS.get(name, FLOW),
            unit=USD_PER_SHARE if name in _INCOME_KINDS else USD,
            non_negative=name in _INCOME_NON_NEGATIVE,
        )
        for name, concepts in INCOME_CONCEPTS.items()
    ),
    derived={"ebitda": _ebitda},
)


# ----------------------------
# Balance sheet
# ----------------------------

BALANCE_CONCEPTS: Dict[str, Tuple[str, ...]] = {
    "total_assets": ("Assets", "AssetsNet"),
    "current_assets": ("AssetsCurrent",),
    "cash_and_cash_equivalents": ("CashAndCashEquivalentsAtCarryingValue", "Cash"),
    "cash_and_short_term_investments": ("CashCashEquivalentsAndShortTermInvestments",),
    "short_term_investments": ("ShortTermInvestments", "MarketableSecuritiesCurrent", "AvailableForSaleSecuritiesDebtSecuritiesCurrent"),
    "accounts_receivable": ("AccountsReceivableNetCurrent", "ReceivablesNetCurrent"),
    "inventory": ("InventoryNet",),
    "other_current_assets": ("OtherAssetsCurrent", "PrepaidExpenseAndOtherAssetsCurrent"),
    "property_plant_equipment": ("PropertyPlantAndEquipmentNet",),
    "goodwill": ("Goodwill",),
    "intangible_assets": ("IntangibleAssetsNetExcludingGoodwill", "FiniteLivedIntangibleAssetsNet"),
    "long_term_investments": ("LongTermInvestments", "MarketableSecuritiesNoncurrent"),
    "other_non_current_assets": ("OtherAssetsNoncurrent",),
    "total_liabilities": ("Liabilities",),
    "current_liabilities": ("LiabilitiesCurrent",),
    "accounts_payable": ("AccountsPayableCurrent",),
    "short_term_debt": ("ShortTermBorrowings", "CommercialPaper"),
    "current_portion_long_term_debt": ("LongTermDebtCurrent",),
    "other_current_liabilities": ("OtherLiabilitiesCurrent",),
    "long_term_debt": ("LongTermDebtNoncurrent", "LongTermDebt"),
    "deferred_tax_liabilities": ("DeferredTaxLiabilitiesNoncurrent", "DeferredIncomeTaxLiabilitiesNet"),
    "other_non_current_liabilities": ("OtherLiabilitiesNoncurrent",),
    "total_shareholder_equity": (
        "StockholdersEquity",
        "StockholdersEquityIncludingPortionAttributableToNoncontrollingInterest",
    ),
    "common_stock": ("CommonStockValue", "CommonStocksIncludingAdditionalPaidInCapital"),
    "retained_earnings": ("RetainedEarningsAccumulatedDeficit",),
    "treasury_stock": ("TreasuryStockValue", "TreasuryStockCommonValue"),
    "minority_interest": ("MinorityInterest",),
    "shares_outstanding": (
        "CommonStockSharesOutstanding",
        "EntityCommonStockSharesOutstanding",
        "WeightedAverageNumberOfSharesOutstandingBasic",
    ),
}

BANK_BALANCE_CONCEPTS: Dict[str, Tuple[str, ...]] = {
    "cash_and_cash_equivalents": ("CashAndDueFromBanks", "CashAndBalancesDueFromDepositoryInstitutions"),
    "other_current_assets": ("LoansAndLeasesReceivableNetReportedAmount", "LoansAndLeasesReceivableNetOfDeferredIncome"),
    "current_liabilities": ("Deposits", "DepositsTotal"),
    "short_term_debt": ("FederalFundsPurchasedAndSecuritiesSoldUnderAgreementsToRepurchase",),
}

_BALANCE_UNITS = {"shares_outstanding": SHARES}

BALANCE_TEMPLATE = StatementTemplate(
    statement_type=BALANCE,
    anchors=BALANCE_CONCEPTS["total_assets"],
    fields=tuple(
        FieldSpec(
            name=name,
            concepts=_chain(concepts, BANK_BALANCE_CONCEPTS, name),
            kind=POSITION,
            unit=_BALANCE_UNITS.get(name, USD),
        )
        for name, concepts in BALANCE_CONCEPTS.items()
    ),
    derived={},
)


# ----------------------------
# Cash flow statement
# ----------------------------

CASH_FLOW_CONCEPTS: Dict[str, Tuple[str, ...]] = {
    "operating_cash_flow": (
        "NetCashProvidedByUsedInOperatingActivities",
        "NetCashProvidedByUsedInOperatingActivitiesContinuingOperations",
    ),
    "net_income": ("NetIncomeLoss", "ProfitLoss"),
    "depreciation_amortization": ("DepreciationDepletionAndAmortization", "DepreciationAndAmortization"),
    "stock_based_compensation": ("ShareBasedCompensation", "AllocatedShareBasedCompensationExpense"),
    "deferred_income_taxes": (
        "DeferredIncomeTaxExpenseBenefit",
        "DeferredIncomeTaxesAndTaxCredits",
        "IncreaseDecreaseInDeferredIncomeTaxes",
    ),
    "change_in_receivables": ("IncreaseDecreaseInAccountsReceivable",),
    "change_in_inventory": ("IncreaseDecreaseInInventories",),
    "change_in_payables": ("IncreaseDecreaseInAccountsPayable",),
    "investing_cash_flow": (
        "NetCashProvidedByUsedInInvestingActivities",
        "NetCashProvidedByUsedInInvestingActivitiesContinuingOperations",
    ),
    "capital_expenditures": ("PaymentsToAcquirePropertyPlantAndEquipment", "PaymentsToAcquireProductiveAssets"),
    "acquisitions_net": ("PaymentsToAcquireBusinessesNetOfCashAcquired",),
    "financing_cash_flow": (
        "NetCashProvidedByUsedInFinancingActivities",
        "NetCashProvidedByUsedInFinancingActivitiesContinuingOperations",
    ),
    "dividends_paid": ("PaymentsOfDividendsCommonStock", "PaymentsOfDividends"),
    "stock_repurchased": ("PaymentsForRepurchaseOfCommonStock",),
    "debt_repayment": ("RepaymentsOfLongTermDebt",),
    "debt_issuance": ("ProceedsFromIssuanceOfLongTermDebt",),
    "net_change_in_cash": (
        "CashCashEquivalentsRestrictedCashAndRestrictedCashEquivalentsPeriodIncreaseDecreaseIncludingExchangeRateEffect",
        "CashAndCashEquivalentsPeriodIncreaseDecrease",
    ),
    "foreign_currency_effect": (
        "EffectOfExchangeRateOnCashCashEquivalentsRestrictedCashAndRestrictedCashEquivalents",
        "EffectOfExchangeRateOnCashAndCashEquivalents",
    ),
    "cash_interest_paid": ("InterestPaidNet", "InterestPaid"),
    "cash_taxes_paid": ("IncomeTaxesPaidNet", "IncomeTaxesPaid"),
    "begin_cash": (
        "CashCashEquivalentsRestrictedCashAndRestrictedCashEquivalents",
        "CashAndCashEquivalentsAtCarryingValue",
    ),
    "end_cash": (
        "CashCashEquivalentsRestrictedCashAndRestrictedCashEquivalents",
        "CashAndCashEquivalentsAtCarryingValue",
    ),
}

BANK_CASH_FLOW_CONCEPTS: Dict[str, Tuple[str, ...]] = {
    "net_income": ("NetIncomeLossAvailableToCommonStockholdersBasic", "NetIncomeLossAttributableToParent"),
    "begin_cash": ("CashAndDueFromBanks",),
    "end_cash": ("CashAndDueFromBanks",),
}

CASH_POSITION_FIELDS = ("begin_cash", "end_cash")
_CASH_FLOW_NON_NEGATIVE = {"capital_expenditures", "dividends_paid", "stock_repurchased"}


def _free_cash_flow(values: Mapping[str, Amount]) -> Amount:
    return values.get("operating_cash_flow", MISSING) - abs(values.get("capital_expenditures", MISSING))


CASH_FLOW_TEMPLATE = StatementTemplate(
    statement_type=CASH_FLOW,
    anchors=CASH_FLOW_CONCEPTS["operating_cash_flow"][:1],
    fields=tuple(
        FieldSpec(
            name=name,
            concepts=_chain(concepts, BANK_CASH_FLOW_CONCEPTS, name),
            kind=POSITION if name in CASH_POSITION_FIELDS else FLOW,
            non_negative=name in _CASH_FLOW_NON_NEGATIVE,
        )
        for name, concepts in CASH_FLOW_CONCEPTS.items()
    ),
    derived={"free_cash_flow": _free_cash_flow},
)


TEMPLATES: Dict[str, StatementTemplate] = {
    INCOME: INCOME_TEMPLATE,
    BALANCE: BALANCE_TEMPLATE,
    CASH_FLOW: CASH_FLOW_TEMPLATE,
}
