"""
Event deck and event resolution for "Veche: Republic vs. Order"

Event definitions are plain data. Resolution is looked up in dispatch tables
keyed by event id (immediate events) or by (event id, option id) (voting
events), so every effect is a pure function of state and the session's rolls.

Resolution strategies:
- immediate: applied without votes
- voting: an option needs 2+ votes to win, otherwise the event default wins;
  funded options split their pool among their voters and fall back when any
  voter cannot pay
- participation: join/decline, cost split among joiners
- order_attack: the Order strikes a frontier region; defenders split the
  defense cost or the region surrenders
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from effects import apply_effects, income_penalty, strength_bonus, strength_penalty
from models import CAPITAL, REPUBLIC, Faction, format_region_name
from regions import valid_order_targets
from resolution import destroy_random_buildings, execute_battle, surrender_region
from rolls import RandomValues
from state import EMPTY_VOTES, GameState, load_config

DEFENSE_COST_TOTAL = load_config()['defense_cost_total']

DEFENSE_QUESTION = 'Who will help fund the defense? Cost will be split evenly among participants.'


class EventKind(Enum):
    IMMEDIATE = "immediate"
    VOTING = "voting"
    PARTICIPATION = "participation"
    ORDER_ATTACK = "order_attack"


@dataclass(frozen=True)
class EventOption:
    """
    One choice of a voting event.

    pool_cost is a total split evenly among the players who voted for the
    option; when the pool cannot be raised the event resolves as `fallback`.
    """
    id: str
    name: str
    cost_text: str = ''
    effect_text: str = ''
    requires_min_money: float = 0
    pool_cost: float = 0
    fallback: Optional[str] = None

    def to_dict(self) -> dict:
        data = {'id': self.id, 'name': self.name}
        if self.cost_text:
            data['costText'] = self.cost_text
        if self.effect_text:
            data['effectText'] = self.effect_text
        if self.requires_min_money:
            data['requiresMinMoney'] = self.requires_min_money
        return data


@dataclass(frozen=True)
class EventDefinition:
    id: str
    name: str
    kind: EventKind
    description: str
    default_option: Optional[str] = None
    options: Tuple[EventOption, ...] = ()
    order_strength: int = 0
    total_cost: float = 0  # Participation events
    question: str = ''

    def option(self, option_id: Any) -> Optional[EventOption]:
        for option in self.options:
            if option.id == option_id:
                return option
        return None

    @property
    def needs_votes(self) -> bool:
        return self.kind != EventKind.IMMEDIATE

    @property
    def binary_vote(self) -> bool:
        """Participation and defense rounds take True/False votes."""
        return self.kind in (EventKind.PARTICIPATION, EventKind.ORDER_ATTACK)

    def to_dict(self) -> dict:
        data = {
            'id': self.id,
            'name': self.name,
            'type': self.kind.value,
            'description': self.description,
        }
        if self.default_option:
            data['defaultOption'] = self.default_option
        if self.options:
            data['options'] = [option.to_dict() for option in self.options]
        if self.order_strength:
            data['orderStrength'] = self.order_strength
            data['minCostPerPlayer'] = 1
        if self.total_cost:
            data['totalCost'] = self.total_cost
        if self.question:
            data['question'] = self.question
        return data


def order_attack(event_id: str, strength: int, description: Optional[str] = None) -> EventDefinition:
    return EventDefinition(
        id=event_id,
        name=f'Order Attack ({strength})',
        kind=EventKind.ORDER_ATTACK,
        description=description or (
            f'The Teutonic Order attacks with strength {strength}. '
            'Who will contribute to the defense?'
        ),
        order_strength=strength,
        question=DEFENSE_QUESTION,
    )


# Spawned by robbing foreign merchants; never drawn from the deck
RETALIATION_EVENT = order_attack(
    'order_attack_rob_foreign', 100,
    'The Teutonic Order retaliates for the robbed merchants! They attack with strength 100.',
)


EVENT_DECK: Tuple[EventDefinition, ...] = (
    EventDefinition(
        id='merchants_robbed',
        name='Merchants Robbed',
        kind=EventKind.VOTING,
        description='Foreign merchants have been robbed near your borders. How will you respond?',
        default_option='trade_risk',
        options=(
            EventOption('rob_foreign', 'Rob foreign merchants',
                        effect_text='50% chance: Order attacks (100)'),
            EventOption('demand_compensation', 'Demand compensation', cost_text='Merchants: -1○',
                        effect_text='50% chance: Merchants -10 str/3 turns'),
            EventOption('trade_risk', 'Trade is risk', effect_text='Merchants: -10 str/3 turns'),
        ),
    ),
    order_attack('order_attack_95', 95),
    order_attack('order_attack_110', 110),
    EventDefinition(
        id='boyars_take_bribes',
        name='Nobles Take Bribes',
        kind=EventKind.VOTING,
        description='Noble corruption has been discovered. How will you handle this?',
        default_option='ignore',
        options=(
            EventOption('investigate', 'Investigate and punish', cost_text='Nobles: -2○',
                        effect_text='Nobles: -15 str/3 turns'),
            EventOption('ignore', 'This is the way it is',
                        effect_text='50% chance: Uprising (buildings destroyed)'),
        ),
    ),
    EventDefinition(
        id='embassy',
        name='Embassy',
        kind=EventKind.VOTING,
        description='An embassy from the Grand Prince arrives. How will you receive them?',
        default_option='modest',
        options=(
            EventOption('modest', 'Receive modestly', cost_text='3○ split',
                        effect_text='Relations maintained', requires_min_money=1,
                        pool_cost=3, fallback='refuse'),
            EventOption('luxurious', 'Receive luxuriously', cost_text='6○ split',
                        effect_text='All: +3 str/3 turns', requires_min_money=2,
                        pool_cost=6, fallback='modest'),
            EventOption('refuse', 'Refuse to receive them',
                        effect_text='All: -15 str, -50% income/5 turns'),
        ),
    ),
    EventDefinition(
        id='relics_found',
        name='Relics Found',
        kind=EventKind.VOTING,
        description='Holy relics have been discovered. Are they genuine or deception?',
        default_option='deception',
        options=(
            EventOption('build_temple', 'Build a church', cost_text='All: -3○',
                        effect_text='All: +5 str/3 turns', requires_min_money=1),
            EventOption('deception', "It's all deception", effect_text='All: -5 str/3 turns'),
        ),
    ),
    EventDefinition(
        id='izhorian_delegation',
        name='Delegation from the Izhorians',
        kind=EventKind.VOTING,
        description='A delegation from the Izhorian people arrives at your gates seeking an audience.',
        default_option='send_back',
        options=(
            EventOption('accept', 'Accept into service', cost_text='6○ split',
                        effect_text='All: +5 str/6 turns', requires_min_money=2,
                        pool_cost=6, fallback='send_back'),
            EventOption('rob', 'Rob them', effect_text='All: +3○, then -5 str/6 turns'),
            EventOption('send_back', 'Send them away', effect_text='No effect'),
        ),
    ),
    EventDefinition(
        id='good_harvest',
        name='Good Harvest',
        kind=EventKind.IMMEDIATE,
        description='The fields have produced an abundant harvest. All players receive +1○.',
    ),
    EventDefinition(
        id='drought',
        name='Drought',
        kind=EventKind.VOTING,
        description='The crops are failing due to lack of rain. How will you respond?',
        default_option='no_food',
        options=(
            EventOption('buy_food', 'Buy emergency food supplies', cost_text='6○ split',
                        effect_text='Famine avoided', requires_min_money=2,
                        pool_cost=6, fallback='no_food'),
            EventOption('no_food', 'Let the people endure', effect_text='Commoners: -12 str/3 turns'),
        ),
    ),
    EventDefinition(
        id='fire',
        name='Fire',
        kind=EventKind.IMMEDIATE,
        description='A fire breaks out in one of your regions, destroying a building.',
    ),
    EventDefinition(
        id='city_fire',
        name='City Fire',
        kind=EventKind.IMMEDIATE,
        description='A fire breaks out in Pskov, destroying a building in the city.',
    ),
    EventDefinition(
        id='heresy',
        name='Heresy',
        kind=EventKind.IMMEDIATE,
        description='Heretical ideas spread among the people, weakening military resolve.',
    ),
    order_attack('order_attack_90', 90),
    order_attack('order_attack_100', 100),
    order_attack('order_attack_105', 105),
    order_attack('order_attack_110_2', 110),
    EventDefinition(
        id='plague',
        name='Plague',
        kind=EventKind.VOTING,
        description='A plague spreads through the city. How will you respond?',
        default_option='no_isolation',
        options=(
            EventOption('fund_isolation', 'Fund isolation and treatment', cost_text='3○ split',
                        effect_text='All: -5 str/2 turns', requires_min_money=1,
                        pool_cost=3, fallback='no_isolation'),
            EventOption('no_isolation', 'Trust in God - no isolation',
                        effect_text='All: -25 str/2 turns'),
        ),
    ),
)

EVENTS_BY_ID: Dict[str, EventDefinition] = {event.id: event for event in EVENT_DECK}
EVENTS_BY_ID[RETALIATION_EVENT.id] = RETALIATION_EVENT


def draw_event(rolls: RandomValues, debug: bool = False,
               debug_index: int = 0) -> Tuple[EventDefinition, int]:
    """
    Draw the next event card.

    Returns:
        (event, next debug index); the index only moves in debug mode, where
        cards come out in deck order
    """
    if debug:
        index = debug_index % len(EVENT_DECK)
        return EVENT_DECK[index], (index + 1) % len(EVENT_DECK)
    index = rolls.event_index if rolls.event_index is not None else rolls.pick_index(len(EVENT_DECK))
    return EVENT_DECK[index % len(EVENT_DECK)], debug_index


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _charge(state: GameState, indices: Sequence[int], amount: float) -> GameState:
    players = list(state.players)
    for i in indices:
        players[i] = replace(players[i], money=players[i].money - amount)
    return replace(state, players=tuple(players))


def _charge_faction(state: GameState, faction: Faction, amount: float) -> GameState:
    """Flat charge clamped at zero, used for faction fines."""
    index = state.player_index(faction)
    return state.with_player(index, state.players[index].add_money(-amount))


def _give_all(state: GameState, amount: float) -> GameState:
    return replace(state, players=tuple(p.add_money(amount) for p in state.players))


def _result(state: GameState, message: str) -> GameState:
    return replace(state, last_event_result=message)


def split_cost(state: GameState, indices: Sequence[int], total: float) -> Optional[float]:
    """Per-head share of `total`, or None when nobody joined or someone can't pay."""
    if not indices:
        return None
    share = total / len(indices)
    if any(state.players[i].money < share for i in indices):
        return None
    return share


# ---------------------------------------------------------------------------
# Immediate events
# ---------------------------------------------------------------------------


def _good_harvest(state: GameState, rolls: RandomValues) -> GameState:
    return _result(_give_all(state, 1), 'Good harvest! All factions gain 1○.')


def _fire(state: GameState, rolls: RandomValues) -> GameState:
    candidates = [name for name, region in state.regions.items() if region.controller == REPUBLIC]
    if not candidates:
        return _result(state, 'Fire breaks out, but there is nothing left to burn.')
    region_name = candidates[rolls.region_index(len(candidates))]
    display = format_region_name(region_name)
    new_state, destroyed = destroy_random_buildings(state, region_name, 1, rolls.building_picks)
    if not destroyed:
        return _result(state, f'Fire breaks out in {display}, but there are no buildings to burn.')
    return _result(new_state, f'Fire destroys {destroyed[0]} in {display}!')


def _city_fire(state: GameState, rolls: RandomValues) -> GameState:
    new_state, destroyed = destroy_random_buildings(state, CAPITAL, 1, rolls.building_picks)
    if not destroyed:
        return _result(state, 'Fire breaks out in Pskov, but there are no buildings to burn.')
    return _result(new_state, f'City fire destroys {destroyed[0]} in Pskov!')


def _heresy(state: GameState, rolls: RandomValues) -> GameState:
    state = apply_effects(state, strength_penalty('all', 10, 2, 'Heretical discord'))
    return _result(state, 'Heretical ideas spread! All factions lose 10 strength for 2 turns.')


IMMEDIATE_RESOLVERS: Dict[str, Callable[[GameState, RandomValues], GameState]] = {
    'good_harvest': _good_harvest,
    'fire': _fire,
    'city_fire': _city_fire,
    'heresy': _heresy,
}


# ---------------------------------------------------------------------------
# Voting events
# ---------------------------------------------------------------------------


def _rob_foreign(state: GameState, rolls: RandomValues) -> GameState:
    roll = rolls.die()
    if roll <= 3:
        return replace(
            state,
            current_event=RETALIATION_EVENT,
            event_votes=EMPTY_VOTES,
            event_resolved=False,
            last_event_result=f'Rolled {roll}! The Order attacks immediately!',
        )
    return _result(state, f'Rolled {roll}. The robbery went unnoticed.')


def _demand_compensation(state: GameState, rolls: RandomValues) -> GameState:
    state = _charge_faction(state, Faction.MERCHANTS, 1)
    if rolls.coin() < 0.5:
        state = apply_effects(state, strength_penalty('Merchants', 10, 3, 'Merchant trading weakness'))
        return _result(state, 'Compensation demand failed! Merchants weakened for 3 turns.')
    return _result(state, 'Compensation received successfully.')


def _trade_risk(state: GameState, rolls: RandomValues) -> GameState:
    state = apply_effects(state, strength_penalty('Merchants', 10, 3, 'Trade route disruption'))
    return _result(state, 'Trade routes disrupted! Merchants lose 10 strength for 3 turns.')


def _investigate(state: GameState, rolls: RandomValues) -> GameState:
    state = _charge_faction(state, Faction.NOBLES, 2)
    state = apply_effects(state, strength_penalty('Nobles', 15, 3, 'Noble corruption investigation penalty'))
    return _result(state, 'Nobles punished for corruption! -2○ and -15 strength for 3 turns.')


def _ignore_bribes(state: GameState, rolls: RandomValues) -> GameState:
    if rolls.coin() < 0.5:
        state, destroyed = destroy_random_buildings(state, CAPITAL, 2, rolls.building_picks)
        state = apply_effects(state, strength_penalty('all', 7, 2, 'Uprising strength penalty'))
        return _result(state, f"UPRISING! Buildings destroyed: {', '.join(destroyed) or 'None'}")
    return _result(state, 'Corruption ignored. The people grumble but no uprising occurs.')


def _embassy_modest(state: GameState, rolls: RandomValues) -> GameState:
    return _result(state, 'Embassy received modestly. Relations maintained.')


def _embassy_luxurious(state: GameState, rolls: RandomValues) -> GameState:
    state = apply_effects(state, strength_bonus('all', 3, 3, 'Embassy reception boost'))
    return _result(state, 'Embassy received luxuriously! +3 strength for 3 turns.')


def _embassy_refuse(state: GameState, rolls: RandomValues) -> GameState:
    state = apply_effects(
        state,
        strength_penalty('all', 15, 5, 'Embassy refusal strength penalty'),
        income_penalty('all', 0.5, 5, 'Embassy refusal income penalty'),
    )
    return _result(state, 'Embassy refused! Grand Prince is insulted. Strength -15 and income -50% for 5 turns.')


def _build_temple(state: GameState, rolls: RandomValues) -> GameState:
    state = _give_all(state, -3)
    state = apply_effects(state, strength_bonus('all', 5, 3, 'Holy relics morale boost'))
    return _result(state, 'Church built for holy relics! +5 strength for 3 turns.')


def _deception(state: GameState, rolls: RandomValues) -> GameState:
    state = apply_effects(state, strength_penalty('all', 5, 3, 'Religious cynicism penalty'))
    return _result(state, 'Relics declared false! Religious cynicism spreads. -5 strength for 3 turns.')


def _accept_izhorians(state: GameState, rolls: RandomValues) -> GameState:
    state = apply_effects(state, strength_bonus('all', 5, 6, 'Izhora allied forces'))
    return _result(state, 'Izhorians accepted into service! +5 strength for 6 turns.')


def _rob_izhorians(state: GameState, rolls: RandomValues) -> GameState:
    state = _give_all(state, 3)
    state = apply_effects(state, strength_penalty('all', 5, 6, 'Izhora hostility'))
    return _result(state, 'Izhorians robbed! They become hostile. -5 strength for 6 turns.')


def _send_back(state: GameState, rolls: RandomValues) -> GameState:
    return _result(state, 'Izhorians sent away. No effect.')


def _buy_food(state: GameState, rolls: RandomValues) -> GameState:
    return _result(state, 'Emergency food purchased! Famine avoided.')


def _no_food(state: GameState, rolls: RandomValues) -> GameState:
    state = apply_effects(state, strength_penalty('Commoners', 12, 3, 'Famine weakens commoners'))
    return _result(state, 'Famine strikes! Commoners lose 12 strength for 3 turns.')


def _fund_isolation(state: GameState, rolls: RandomValues) -> GameState:
    state = apply_effects(state, strength_penalty('all', 5, 2, 'Mild plague effects despite isolation'))
    return _result(state, 'Plague partially contained! All factions lose 5 strength for 2 turns.')


def _no_isolation(state: GameState, rolls: RandomValues) -> GameState:
    state = apply_effects(state, strength_penalty('all', 25, 2, 'Severe plague weakens population'))
    return _result(state, 'Plague spreads unchecked! All factions lose 25 strength for 2 turns.')


VOTING_RESOLVERS: Dict[Tuple[str, str], Callable[[GameState, RandomValues], GameState]] = {
    ('merchants_robbed', 'rob_foreign'): _rob_foreign,
    ('merchants_robbed', 'demand_compensation'): _demand_compensation,
    ('merchants_robbed', 'trade_risk'): _trade_risk,
    ('boyars_take_bribes', 'investigate'): _investigate,
    ('boyars_take_bribes', 'ignore'): _ignore_bribes,
    ('embassy', 'modest'): _embassy_modest,
    ('embassy', 'luxurious'): _embassy_luxurious,
    ('embassy', 'refuse'): _embassy_refuse,
    ('relics_found', 'build_temple'): _build_temple,
    ('relics_found', 'deception'): _deception,
    ('izhorian_delegation', 'accept'): _accept_izhorians,
    ('izhorian_delegation', 'rob'): _rob_izhorians,
    ('izhorian_delegation', 'send_back'): _send_back,
    ('drought', 'buy_food'): _buy_food,
    ('drought', 'no_food'): _no_food,
    ('plague', 'fund_isolation'): _fund_isolation,
    ('plague', 'no_isolation'): _no_isolation,
}


def tally_votes(event: EventDefinition, votes: Sequence[Any]) -> str:
    """Option with at least 2 votes, otherwise the event default."""
    counts: Dict[Any, int] = {}
    for vote in votes:
        if vote is not None:
            counts[vote] = counts.get(vote, 0) + 1
    winner = event.default_option
    best = 0
    for option_id, count in counts.items():
        if count >= 2 and count > best:
            best = count
            winner = option_id
    return winner


def fund_option(event: EventDefinition, state: GameState, votes: Sequence[Any],
                option_id: str) -> Tuple[GameState, str]:
    """
    Raise the pool for the winning option, falling back until one is affordable.

    The winning option is paid by its own voters. A fallback option that
    carries a pool is paid by every active player.

    Returns:
        (state with money deducted, option actually applied)
    """
    payers = [i for i, vote in enumerate(votes) if vote == option_id]
    while True:
        option = event.option(option_id)
        if option is None or not option.pool_cost:
            return state, option_id
        share = split_cost(state, payers, option.pool_cost)
        if share is not None:
            return _charge(state, payers, share), option_id
        option_id = option.fallback
        payers = state.active_slots()


def resolve_voting_event(event: EventDefinition, state: GameState, votes: Sequence[Any],
                         rolls: RandomValues) -> GameState:
    winner = tally_votes(event, votes)
    state, applied = fund_option(event, state, votes, winner)
    resolver = VOTING_RESOLVERS.get((event.id, applied))
    if resolver is None:
        return _result(state, f'Option chosen: {applied}')
    return resolver(state, rolls)


# ---------------------------------------------------------------------------
# Participation and Order attacks
# ---------------------------------------------------------------------------


def resolve_participation_event(event: EventDefinition, state: GameState,
                                votes: Sequence[Any]) -> GameState:
    """Join/decline round; succeeds with 1+ joiners who can all pay their share."""
    joiners = [i for i, vote in enumerate(votes) if vote is True]
    share = split_cost(state, joiners, event.total_cost)
    if share is None:
        return _result(state, f'{event.name}: not enough support, nothing happens.')
    state = _charge(state, joiners, share)
    return _result(state, f'{event.name}: funded by {len(joiners)} of {len(votes)} factions.')


def choose_order_target(state: GameState, rolls: RandomValues) -> Optional[str]:
    """Random frontier region; the capital is only hit when nothing else is exposed."""
    targets = valid_order_targets(state.regions)
    others = sorted(name for name in targets if name != CAPITAL)
    if others:
        return others[rolls.pick_index(len(others))]
    if CAPITAL in targets:
        return CAPITAL
    return None


def resolve_order_attack_event(event: EventDefinition, state: GameState, votes: Sequence[Any],
                               rolls: RandomValues) -> GameState:
    target = choose_order_target(state, rolls)
    if target is None:
        return _result(state, 'The Teutonic Order could not find a valid target to attack.')

    defenders = [i for i, vote in enumerate(votes) if vote is True]
    share = split_cost(state, defenders, DEFENSE_COST_TOTAL)
    if share is None:
        return surrender_region(state, target)

    state = _charge(state, defenders, share)
    return execute_battle(state, event.order_strength, target, defenders, rolls.battle_roll)


def resolve_event(event: EventDefinition, state: GameState, votes: Sequence[Any],
                  rolls: Optional[RandomValues] = None) -> GameState:
    """Dispatch an event to the resolver for its kind."""
    rolls = rolls or RandomValues()
    if event.kind == EventKind.IMMEDIATE:
        resolver = IMMEDIATE_RESOLVERS.get(event.id)
        if resolver is None:
            return _result(state, f'{event.name} occurred.')
        return resolver(state, rolls)
    if event.kind == EventKind.VOTING:
        return resolve_voting_event(event, state, votes, rolls)
    if event.kind == EventKind.PARTICIPATION:
        return resolve_participation_event(event, state, votes)
    return resolve_order_attack_event(event, state, votes, rolls)


def resolve_current_event(state: GameState, rolls: Optional[RandomValues] = None) -> GameState:
    """
    Resolve state.current_event with the recorded votes.

    If resolution injected a different event, it stays unresolved so the new
    event gets its own round of votes.
    """
    event = state.current_event
    if event is None:
        return state
    new_state = resolve_event(event, state, state.event_votes, rolls)
    nested = new_state.current_event is not None and new_state.current_event.id != event.id
    return replace(new_state, event_resolved=not nested)
