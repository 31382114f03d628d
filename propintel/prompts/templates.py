"""
Built-in prompt templates.

Served when a category has no tracked performance yet. Placeholders in
braces are filled by the report pipeline, not here.
"""

from propintel.prompts.schemas import PromptCategory

DEFAULT_TEMPLATES: dict[PromptCategory, str] = {
    PromptCategory.LOCATION_ANALYSIS: """Analyze this property description to extract specific location details:

Property: {address}, {city}, {province}
Description: "{description}"

Please extract and identify:
1. Specific streets, avenues, or roads mentioned
2. Neighbourhood names or area names
3. Urbanizations, complexes, or residential areas
4. Landmarks or notable places
5. Nearby places of interest (schools, hospitals, shops)

IMPORTANT: Preserve all Spanish characters (á, é, í, ó, ú, ñ, ü) exactly as they appear.

Return the result in this JSON format:
{
  "specificStreets": [],
  "neighbourhoods": [],
  "urbanizations": [],
  "landmarks": [],
  "nearbyPlaces": [],
  "enhancedAddress": "{address}, {city}, {province}"
}""",
    PromptCategory.MARKET_SUMMARY: """Generate a property analysis summary based on this data:

PROPERTY: {address}, {city}
- Type: {propertyType}
- Size: {totalArea} m²
- Bedrooms: {bedrooms}, Bathrooms: {bathrooms}
- Condition: {condition}
- Features: {features}

MARKET DATA: {marketData}
AMENITIES: {amenities}
COMPARABLES: {comparables}
DEVELOPMENTS: {developments}

Provide analysis in this JSON format:
{
  "executiveSummary": "2-3 sentence overview",
  "investmentRecommendation": "Buy/Hold/Avoid with reasoning",
  "priceRange": "Suggested listing price range",
  "valueForecast": "2-year value prediction",
  "prosAndCons": "Key pros and cons"
}""",
    PromptCategory.VALUATION: """Based on the comparable properties and market data provided, generate a property valuation:

TARGET PROPERTY:
{propertyDetails}

COMPARABLE PROPERTIES:
{comparables}

MARKET DATA:
{marketData}

Consider recent sales, condition, market trends, seasonality, location and development impact.

Provide a JSON response with:
{
  "valuationRange": {"low": number, "high": number, "estimated": number},
  "confidence": number,
  "methodology": "explanation of valuation approach",
  "adjustments": [{"factor": "string", "adjustment": number}]
}""",
    PromptCategory.INVESTMENT_ADVICE: """Provide investment analysis for this property:

PROPERTY ANALYSIS:
{propertyData}

MARKET CONTEXT:
{marketContext}

RISK FACTORS:
{riskFactors}

Cover investment grade (A-F), expected returns, risk assessment, timeline and exit strategy.

Return JSON format:
{
  "investmentGrade": "A|B|C|D|F",
  "expectedReturns": {"rentalYield": number, "capitalAppreciation": number},
  "riskLevel": "low|medium|high",
  "recommendation": "detailed investment recommendation"
}""",
    PromptCategory.COMPARABLE_ANALYSIS: """Analyze these comparable properties to determine market positioning:

TARGET PROPERTY:
{targetProperty}

COMPARABLE PROPERTIES:
{comparables}

For each comparable, analyze similarity, price per m², feature differences and location.

Provide analysis in JSON format:
{
  "bestComparables": [],
  "priceAnalysis": {"averagePricePerM2": number, "targetPositioning": "above|at|below market"},
  "pricingRecommendation": "suggested pricing strategy"
}""",
}


def default_template(category: str) -> str:
    try:
        return DEFAULT_TEMPLATES[PromptCategory(category)]
    except ValueError:
        return (
            f"Analyze the provided data for {category} and return a structured "
            "JSON response with relevant insights."
        )
