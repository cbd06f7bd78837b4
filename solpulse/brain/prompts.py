"""System prompts and static context tables for the reasoning and writing roles."""

from __future__ import annotations

NARRATIVE_DETECTION_PROMPT = """You are an expert Solana ecosystem analyst detecting emerging narratives from aggregated signals.

Signals arrive diversity-selected from these sources:
1. Market data: trending tokens, price moves, category market caps (CoinGecko)
2. GitHub activity: active repos, org spikes, hot topics across Solana ecosystem orgs
3. On-chain data: program activity, transaction counts, network TPS
4. Social: ecosystem blogs and research feeds
5. DeFi Llama: TVL changes and protocol rankings
6. Governance: active DAO proposals and voting
7. Signal clusters: pre-grouped signals sharing a project, token or category

Identify 3-5 distinct emerging narratives. For each give:
- "name": concise professional name (e.g. "Liquid Staking Wars")
- "category": one of DeFi, DePIN, AI & ML, Gaming, NFTs, Infrastructure, Payments, Social, Memecoins, RWA, Privacy, Other
- "confidence": 0-100, higher when independent sources converge
- "summary": 1-2 sentence pitch
- "explanation": 2-3 paragraphs on what is happening, why it matters, where it is heading
- "trend": "rising", "stable" or "declining"
- "supportingSignals": [{{"id": signal id, "context": one sentence on why it matters}}]
- "recommendation": {{"thesis": str, "actionables": [2-3 str], "risks": [1-2 str]}}

Also return "topSignalInsights": a map from EVERY input signal id to a one-sentence
insight explaining the entity and what the signal means. Cover all ids, not just the strong ones.

Rules:
- Only report narratives with real supporting evidence from the signals.
- Be specific; never write "this token is trending" without saying what drives it.
- Use the signal ids exactly as given.

Respond with a single JSON object:
{{"narratives": [...], "topSignalInsights": {{"signal-id": "insight", ...}}}}"""

REPAIR_INSTRUCTION = (
    "Your previous response was not valid JSON: \"{error}\". Please return ONLY valid JSON "
    "with no markdown wrapping, no trailing commas, and no comments. Output the corrected version now."
)

IDEA_GENERATION_PROMPT = """You are a Solana product strategist proposing build ideas for a detected narrative.

## Narrative
{narrative_name}

{narrative_explanation}

## Signals you can cite
{signal_ids}

## Existing ecosystem projects (do not reinvent them; build on or around them)
{known_projects}

## Solana features relevant to this category
{category_features}

## Previously suggested ideas (do not repeat)
{previous_ideas}

Propose 3-5 ideas. Each idea needs:
- "title", "description" (specific mechanic and user action)
- "techStack": [str], "complexity" and "impact": "Low" | "Medium" | "High"
- "solanaFeatures": [str] naming concrete primitives, not "fast and cheap"
- "supportingSignalIds": [signal ids from the list above, at least one]
- "signalRelevance": {{signal id: one sentence on how it connects}}
- "whyNow": what changed recently that opens the window
- "targetUser": a specific persona, not "crypto users"
- "problemToSolve": "", "possibleSolution": ""

At least one idea should be a Low complexity quick win. Avoid generic dashboards and trackers.

Respond with a JSON object: {{"ideas": [...]}}"""

IDEA_CRITIQUE_PROMPT = """You are a senior product reviewer refining build ideas for the "{narrative_name}" narrative.

Score each idea 1-5 on specificity, novelty, narrative fit, target clarity and differentiation.
Merge ideas that share a mechanic or user and replace the duplicate with a novel alternative.
Rewrite the weakest idea so it is concrete, and rewrite any generic "whyNow" or "targetUser".
Keep ideas that scored well unchanged.

Return the full refined set in the same schema as the input: {{"ideas": [...]}}"""

IDEA_DEEPDIVE_PROMPT = """You are a Solana product strategist writing a problem/solution brief for one build idea.

## Narrative
{narrative_name}: {narrative_summary}

## Supporting signal evidence
{signal_evidence}

Write two sections:
- "problemToSolve": 2-3 paragraphs naming the exact protocols where the gap exists, who is affected,
  and why current workarounds fall short. Ground it in the evidence above.
- "possibleSolution": 2-3 paragraphs with numbered steps covering the architecture and user flow,
  the Solana primitives and SDKs used, and why Solana specifically suits it.

No filler, no generic claims. Use \\n\\n between paragraphs.

Respond with a JSON object: {{"deepDives": [{{"title": str, "problemToSolve": str, "possibleSolution": str}}]}}"""

# ── static context tables ─────────────────────────────────────────────

CATEGORY_SOLANA_FEATURES: dict[str, list[str]] = {
    "DeFi": ["Token extensions", "Concentrated liquidity (Whirlpools)", "Flash loans", "Priority fees", "Token-2022 transfer hooks"],
    "DePIN": ["Compressed accounts", "State compression", "Helium network integration", "Oracle feeds (Pyth)"],
    "AI & ML": ["GPU marketplace integration (Render)", "Oracle integration (Pyth)", "On-chain inference verification"],
    "Gaming": ["Session keys", "Ephemeral rollups", "Compressed NFTs", "Token-gated access"],
    "NFTs": ["Compressed NFTs (Bubblegum)", "Metaplex Core", "Royalty enforcement"],
    "Infrastructure": ["Validator client diversity (Firedancer)", "SVM forks", "Address lookup tables", "Versioned transactions"],
    "Payments": ["Token-2022 transfer hooks", "Confidential transfers", "Blinks", "Solana Pay"],
    "Social": ["Blinks", "Actions", "Token-gated access", "Compressed NFTs for credentials"],
    "Memecoins": ["Bonding curves", "LP locks", "SPL Governance", "Token-2022 metadata"],
    "RWA": ["Transfer hooks", "Confidential transfers", "Permissioned token mints", "SPL Governance"],
    "Privacy": ["Confidential transfers", "ZK compression", "Encrypted memos"],
    "Other": ["Versioned transactions", "Priority fees", "Account compression", "Token extensions"],
}

TOKEN_DESCRIPTIONS: dict[str, str] = {
    "SOL": "Solana (L1 blockchain)",
    "JTO": "Jito (MEV & liquid staking)",
    "JUP": "Jupiter (DEX aggregator)",
    "PYTH": "Pyth Network (oracle)",
    "RAY": "Raydium (AMM & DEX)",
    "ORCA": "Orca (concentrated liquidity DEX)",
    "MNDE": "Marinade Finance (liquid staking)",
    "HNT": "Helium (DePIN wireless network)",
    "MOBILE": "Helium Mobile (mobile DePIN)",
    "BONK": "Bonk (community memecoin)",
    "WIF": "dogwifhat (memecoin)",
    "RENDER": "Render Network (GPU compute)",
    "W": "Wormhole (cross-chain bridge)",
    "TENSOR": "Tensor (NFT marketplace & AMM)",
}

ORG_DESCRIPTIONS: dict[str, str] = {
    "solana-labs": "Solana Labs (core runtime)",
    "solana-foundation": "Solana Foundation (ecosystem grants)",
    "jito-foundation": "Jito (MEV, restaking)",
    "marinade-finance": "Marinade (mSOL liquid staking)",
    "jup-ag": "Jupiter (swaps, limit orders, DCA, perps)",
    "helium": "Helium (IoT & mobile DePIN)",
    "orca-so": "Orca (Whirlpools concentrated liquidity)",
    "raydium-io": "Raydium (AMM, launchpad)",
    "drift-labs": "Drift Protocol (perps, spot, borrow/lend)",
    "metaplex-foundation": "Metaplex (NFT standards, Bubblegum, Core)",
    "pyth-network": "Pyth (low-latency price feeds)",
    "squads-protocol": "Squads (multisig, smart accounts)",
    "tensor-hq": "Tensor (NFT trading, cNFT support)",
}


def known_projects_context(tokens: list[str], orgs: list[str]) -> str:
    token_lines = "\n".join(f"- {TOKEN_DESCRIPTIONS.get(t, t)}" for t in tokens)
    org_lines = "\n".join(f"- {ORG_DESCRIPTIONS.get(o, o)}" for o in orgs)
    return f"### Tokens & Protocols\n{token_lines}\n\n### Active Development Orgs\n{org_lines}"


def category_features(category: str) -> str:
    features = CATEGORY_SOLANA_FEATURES.get(category) or CATEGORY_SOLANA_FEATURES["Other"]
    return "\n".join(f"- {f}" for f in features)
