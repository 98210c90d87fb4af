# BSD 3-Clause License
#
# Copyright (c) 2022-2025, rd2
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions are met:
#
# 1. Redistributions of source code must retain the above copyright notice, this
#    list of conditions and the following disclaimer.
#
# 2. Redistributions in binary form must reproduce the above copyright notice,
#    this list of conditions and the following disclaimer in the documentation
#    and/or other materials provided with the distribution.
#
# 3. Neither the name of the copyright holder nor the names of its
#    contributors may be used to endorse or promote products derived from
#    this software without specific prior written permission.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS"
# AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE
# IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE
# DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR CONTRIBUTORS BE LIABLE
# FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL
# DAMAGES (INCLUDING, BUT NOT LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR
# SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER
# CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY,
# OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE
# OF THIS SOFTWARE, EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.

import collections
from oslg import oslg
from .topolys import CN
from .geo import matches, points

# Linear thermal bridge (PSI) base types. Each has "concave" & "convex"
# variants, e.g. "rimjoistconcave" (basilaire) & "rimjoistconvex" (cantilever).
_bases = ("rimjoist", "parapet", "roof", "ceiling",
          "head", "sill", "jamb",
          "doorhead", "doorsill", "doorjamb",
          "skylighthead", "skylightsill", "skylightjamb",
          "spandrel", "corner", "balcony", "balconysill", "balconydoorsill",
          "party", "grade")

# ... along with these (variant-free) aggregate types.
_aggregates = ("fenestration", "door", "skylight", "joint", "transition")

_variants = ("concave", "convex")

_types = tuple([b + v for b in _bases for v in ("",) + _variants]) + _aggregates

# If missing from a PSI set, a type inherits the value of its 'parent' type(s),
# in order of precedence. Variants first inherit from their base type.
_parents = dict(
            head = ("fenestration",),
            sill = ("fenestration",),
            jamb = ("fenestration",),
            door = ("fenestration",),
        skylight = ("fenestration",),
        doorhead = ("door", "fenestration"),
        doorsill = ("door", "fenestration"),
        doorjamb = ("door", "fenestration"),
    skylighthead = ("skylight", "fenestration"),
    skylightsill = ("skylight", "fenestration"),
    skylightjamb = ("skylight", "fenestration"),
         parapet = ("roof",),
            roof = ("parapet",),
     balconysill = ("balcony", "sill", "fenestration"),
 balconydoorsill = ("balconysill", "balcony", "sill", "fenestration")
    )

# Built-in PSI sets (W/K per m), with values for:
_keys = ("rimjoist", "parapet", "roof", "ceiling", "fenestration", "door",
         "skylight", "spandrel", "corner", "balcony", "balconysill",
         "balconydoorsill", "party", "grade", "joint", "transition")

# Sources:
#   - BETBG: BC Hydro's Building Envelope Thermal Bridging Guide
#   - Quebec: Quebec's energy code (Section 3.3)
#   - 90.1.22: ASHRAE 90.1 2022 (Appendix A10), per construction category
#              (steel-, mass exterior-, mass interior- & wood-framed), and
#              either default (mitigated) or unmitigated
_psis = collections.OrderedDict([
    ("poor (BETBG)",
        (1.000, 0.800, 0.800, 0.000, 0.500, 0.500, 0.500, 0.155,
         0.850, 1.000, 1.000, 1.000, 0.850, 0.850, 0.300, 0.000)),
    ("regular (BETBG)",
        (0.500, 0.450, 0.450, 0.000, 0.350, 0.350, 0.350, 0.155,
         0.450, 0.500, 0.500, 0.500, 0.450, 0.450, 0.200, 0.000)),
    ("efficient (BETBG)",
        (0.200, 0.200, 0.200, 0.000, 0.199999, 0.199999, 0.199999, 0.155,
         0.200, 0.200, 0.200, 0.200, 0.200, 0.200, 0.100, 0.000)),
    ("spandrel (BETBG)",
        (0.615, 1.000, 1.000, 0.000, 0.000, 0.000, 0.350, 0.155,
         0.425, 1.110, 1.110, 1.110, 0.990, 0.880, 0.500, 0.000)),
    ("spandrel HP (BETBG)",
        (0.170, 0.660, 0.660, 0.000, 0.000, 0.000, 0.350, 0.155,
         0.200, 0.400, 0.400, 0.400, 0.500, 0.880, 0.140, 0.000)),
    ("code (Quebec)",
        (0.300, 0.325, 0.325, 0.000, 0.200, 0.200, 0.200, 0.155,
         0.300, 0.500, 0.500, 0.500, 0.450, 0.450, 0.200, 0.000)),
    ("uncompliant (Quebec)",
        (0.850, 0.800, 0.800, 0.000, 0.500, 0.500, 0.500, 0.155,
         0.850, 1.000, 1.000, 1.000, 0.850, 0.850, 0.500, 0.000)),
    ("90.1.22|steel.m|default",
        (0.307, 0.260, 0.020, 0.000, 0.194, 0.000, 0.000, 0.000001,
         0.000002, 0.307, 0.307, 0.307, 0.000001, 0.000001, 0.376, 0.000)),
    ("90.1.22|steel.m|unmitigated",
        (0.842, 0.500, 0.650, 0.000, 0.505, 0.000, 0.000, 0.000001,
         0.000002, 0.842, 1.686, 0.842, 0.000001, 0.000001, 0.554, 0.000)),
    ("90.1.22|mass.ex|default",
        (0.205, 0.217, 0.150, 0.000, 0.226, 0.000, 0.000, 0.000001,
         0.000002, 0.205, 0.307, 0.205, 0.000001, 0.000001, 0.322, 0.000)),
    ("90.1.22|mass.ex|unmitigated",
        (0.824, 0.412, 0.750, 0.000, 0.325, 0.000, 0.000, 0.000001,
         0.000002, 0.824, 1.686, 0.824, 0.000001, 0.000001, 0.476, 0.000)),
    ("90.1.22|mass.in|default",
        (0.495, 0.393, 0.150, 0.000, 0.143, 0.000, 0.000, 0.000,
         0.000001, 0.495, 0.307, 0.495, 0.000001, 0.000001, 0.322, 0.000)),
    ("90.1.22|mass.in|unmitigated",
        (0.824, 0.884, 0.750, 0.000, 0.543, 0.000, 0.000, 0.000,
         0.000001, 0.824, 1.686, 0.824, 0.000001, 0.000001, 0.476, 0.000)),
    ("90.1.22|wood.fr|default",
        (0.084, 0.056, 0.020, 0.000, 0.171, 0.000, 0.000, 0.000,
         0.000001, 0.084, 0.171001, 0.084, 0.000001, 0.000001, 0.074, 0.000)),
    ("90.1.22|wood.fr|unmitigated",
        (0.582, 0.056, 0.150, 0.000, 0.260, 0.000, 0.000, 0.000,
         0.000001, 0.582, 0.582, 0.582, 0.000001, 0.000001, 0.322, 0.000)),
    ("(non thermal bridging)",
        (0.000, 0.000, 0.000, 0.000, 0.000, 0.000, 0.000, 0.000,
         0.000, 0.000, 0.000, 0.000, 0.000, 0.000, 0.000, 0.000))
    ])

# Built-in KHI points (W/K).
_khis = collections.OrderedDict([
    ("poor (BETBG)"               , 0.900), # detail 5.7.2 BETBG
    ("regular (BETBG)"            , 0.500), # detail 5.7.4 BETBG
    ("efficient (BETBG)"          , 0.150), # detail 5.7.3 BETBG
    ("code (Quebec)"              , 0.500), # art. 3.3.1.3
    ("uncompliant (Quebec)"       , 1.000), # NA
    ("90.1.22|steel.m|default"    , 0.480), # steel/concrete beam penetrations
    ("90.1.22|steel.m|unmitigated", 0.920),
    ("90.1.22|mass.ex|default"    , 0.330),
    ("90.1.22|mass.ex|unmitigated", 0.460),
    ("90.1.22|mass.in|default"    , 0.330),
    ("90.1.22|mass.in|unmitigated", 0.460),
    ("90.1.22|wood.fr|default"    , 0.040),
    ("90.1.22|wood.fr|unmitigated", 0.330),
    ("(non thermal bridging)"     , 0.000)
    ])

# Override group layers, in order, with matching surface attribute keys.
_groups = (("stories", "story"), ("spacetypes", "stype"), ("spaces", "space"))


def types() -> tuple:
    return _types


def variant(type=""):
    """Returns the "concave" or "convex" suffix of a PSI type, or ""."""
    for v in _variants:
        if type.endswith(v) and type != v: return v

    return ""


def base(type=""):
    """Returns a PSI type stripped of any "concave" or "convex" suffix."""
    v = variant(type)

    return type[:-len(v)] if v else type


def chain(type="") -> list:
    """Returns a PSI type's inheritance chain, in order of precedence, e.g.
    "headconcave" > "head" > "fenestration".
    """
    v   = variant(type)
    b   = base(type)
    res = []

    for t in (b,) + _parents.get(b, ()):
        if v and t + v in _types: res.append(t + v)
        res.append(t)

    return res


class PSI:
    """Library of PSI sets: built-in sets, then any appended (custom) set.

    Attributes:
        set (dict): PSI sets, keyed by set ID (declared type: W/K per m).
        has (dict): Per set, whether each admissible type is declared.
        val (dict): Per set, the (inherited) value of each admissible type.

    """

    def __init__(self):
        self.set = collections.OrderedDict()
        self.has = dict()
        self.val = dict()

        for id, vals in _psis.items():
            s = dict(id=id)

            for k, v in zip(_keys, vals): s[k] = v

            self.append(s)

    def gen(self, id=""):
        """Generates PSI set shorthands: which types are declared ('has'),
        and the value each admissible type resolves to ('val'), after
        inheritance. Undeclared types default to 0.

        Returns:
            bool: Whether successful.
            False: If invalid input (see logs).

        """
        mth = "tbd.PSI.gen"

        if id not in self.set:
            return oslg.hashkey(id, self.set, id, mth, CN.ERR, False)

        s = self.set[id]
        h = dict([(t, t in s) for t in _types])
        v = dict()

        for t in _types:
            v[t] = 0.0

            for c in chain(t):
                if h[c]:
                    v[t] = s[c]
                    break

        if not h["parapet"]:
            v["parapet"] = max(v["parapetconcave"], v["parapetconvex"])
        if not h["roof"]:
            v["roof"] = max(v["roofconcave"], v["roofconvex"])

        self.has[id] = h
        self.val[id] = v

        return True

    def append(self, set=dict()) -> bool:
        """Appends a new PSI set. Joint, transition & ceiling types default
        to 0 W/K per m.

        Args:
            set (dict):
                A new PSI set, e.g. dict(id="custom", rimjoist=0.3, ...).

        Returns:
            bool: Whether successfully appended.
            False: If invalid input (see logs).

        """
        mth = "tbd.PSI.append"

        if not isinstance(set, dict):
            return oslg.mismatch("set", set, dict, mth, CN.DBG, False)
        if "id" not in set:
            return oslg.hashkey("set", set, "id", mth, CN.ERR, False)

        id = str(set["id"]).strip()

        if not id:
            oslg.empty("set ID", mth, CN.ERR)
            return False

        if id in self.set:
            oslg.log(CN.ERR, "'%s': existing PSI set (%s)" % (id, mth))
            return False

        s = dict()

        for t in _types:
            if t not in set: continue

            try:
                s[t] = float(set[t])
            except (ValueError, TypeError):
                oslg.mismatch("%s %s" % (id, t), set[t], float, mth, CN.ERR)
                continue

            if s[t] < 0:
                oslg.negative("%s %s" % (id, t), mth, CN.ERR)
                del s[t]

        for t in ("joint", "transition", "ceiling"):
            if t not in s: s[t] = 0.0

        self.set[id] = s
        self.gen(id)

        return True

    def shorthands(self, id="") -> dict:
        """Returns a PSI set's shorthands: dict(has=..., val=...), with
        empty dicts if the set is unknown."""
        sh = dict(has=dict(), val=dict())
        if id not in self.set: return sh

        sh["has"] = self.has[id]
        sh["val"] = self.val[id]

        return sh

    def complete(self, id="") -> bool:
        """Validates whether a PSI set is complete, i.e. holds every mandatory
        type (directly, or through a valid combination of types):
            - "fenestration", or "head" + "sill" + "jamb"
            - "corner", or "cornerconcave" + "cornerconvex"
            - "parapet" or "roof" (or both of either's variants)
            - "party", "grade", "balcony" & "rimjoist"

        Returns:
            bool: Whether set is complete.
            False: If invalid input (see logs).

        """
        mth = "tbd.PSI.complete"
        id  = str(id).strip() if id is not None else ""

        if not id:
            oslg.empty("set ID", mth, CN.ERR)
            return False
        if id not in self.set:
            return oslg.hashkey(id, self.set, id, mth, CN.ERR, False)

        h = self.has[id]

        ok = h["fenestration"] or (h["head"] and h["sill"] and h["jamb"])
        if not ok: return False

        ok = h["corner"] or (h["cornerconcave"] and h["cornerconvex"])
        if not ok: return False

        ok = h["parapet"] or h["roof"]
        ok = ok or (h["parapetconcave"] and h["parapetconvex"])
        ok = ok or (h["roofconcave"] and h["roofconvex"])
        if not ok: return False

        for t in ("party", "grade", "balcony", "rimjoist"):
            if not h[t]: return False

        return True

    def safe(self, id="", type=""):
        """Returns the PSI type a set actually declares for a requested type:
        the type itself, its base type (if a variant), or its aggregate
        fenestration type (e.g. "doorheadconcave" > "doorhead" > "door" >
        "fenestration").

        Args:
            id (str):
                PSI set identifier.
            type (str):
                PSI type.

        Returns:
            str: Safe PSI type.
            None: If unknown set, or if no safe type (see logs).

        """
        mth = "tbd.PSI.safe"

        if id not in self.set:
            return oslg.hashkey(id, self.set, id, mth, CN.ERR, None)

        h     = self.has[id]
        safer = str(type)

        if not h.get(safer, False): safer = base(safer)

        if not h.get(safer, False):
            if safer in ("head", "sill", "jamb"):
                safer = "fenestration"
            elif safer in ("doorhead", "doorsill", "doorjamb"):
                safer = "door"
            elif safer in ("skylighthead", "skylightsill", "skylightjamb"):
                safer = "skylight"

        if not h.get(safer, False):
            if safer in ("door", "skylight"): safer = "fenestration"

        if h.get(safer, False): return safer

        return None


class KHI:
    """Library of KHI (point thermal bridge) values, in W/K."""

    def __init__(self):
        self.point = collections.OrderedDict()

        for id, val in _khis.items(): self.append(dict(id=id, point=val))

    def append(self, k=dict()) -> bool:
        """Appends a new KHI entry, e.g. dict(id="beam", point=0.8).

        Returns:
            bool: Whether successfully appended.
            False: If invalid input (see logs).

        """
        mth = "tbd.KHI.append"

        if not isinstance(k, dict):
            return oslg.mismatch("KHI", k, dict, mth, CN.DBG, False)
        if "id" not in k:
            return oslg.hashkey("KHI", k, "id", mth, CN.ERR, False)
        if "point" not in k:
            return oslg.hashkey("KHI", k, "point", mth, CN.ERR, False)

        id = str(k["id"]).strip()

        if id in self.point:
            oslg.log(CN.ERR, "'%s': existing KHI entry (%s)" % (id, mth))
            return False

        try:
            val = float(k["point"])
        except (ValueError, TypeError):
            return oslg.mismatch("%s point" % id, k["point"], float, mth, CN.ERR, False)

        if val < 0:
            return oslg.negative("%s point" % id, mth, CN.ERR, False)

        self.point[id] = val

        return True


def inputs(s=dict(), e=dict(), argh=dict()) -> dict:
    """Processes (pre-parsed) customization inputs, after surfaces and edges
    have been ingested. Appends custom PSI sets & KHI points, validates the
    building PSI set (FATAL if missing or incomplete), validates optional
    group, surface and edge entries (ERROR if unmatched), and tags matched
    edges with custom types ("io_type") and sets ("io_set").

    Args:
        s (dict):
            TBD surfaces.
        e (dict):
            TBD edges.
        argh (dict):
            TBD arguments, with "option" (building PSI set) and "io" keys.

    Returns:
        A dictionary:
            - "io" (dict): validated customization entries (None if FATAL)
            - "psi" (PSI): PSI library
            - "khi" (KHI): KHI library

    """
    mth = "tbd.inputs"
    ipt = dict(io=None, psi=PSI(), khi=KHI())

    if not isinstance(s, dict):
        return oslg.mismatch("surfaces", s, dict, mth, CN.DBG, ipt)
    if not isinstance(e, dict):
        return oslg.mismatch("edges", e, dict, mth, CN.DBG, ipt)
    if not isinstance(argh, dict):
        return oslg.mismatch("argh", argh, dict, mth, CN.DBG, ipt)
    if "option" not in argh:
        return oslg.hashkey("argh", argh, "option", mth, CN.DBG, ipt)

    io = argh.get("io") or dict()

    if not isinstance(io, dict):
        return oslg.mismatch("io", io, dict, mth, CN.FTL, ipt)

    io = dict(io)

    for psi in io.get("psis", []): ipt["psi"].append(psi)
    for khi in io.get("khis", []): ipt["khi"].append(khi)

    if "building" not in io: io["building"] = dict(psi=argh["option"])

    bdg = io["building"]

    if not isinstance(bdg, dict) or "psi" not in bdg:
        return oslg.hashkey("building", bdg, "psi", mth, CN.FTL, ipt)

    if not ipt["psi"].complete(bdg["psi"]):
        m = "Incomplete building PSI set '%s' (%s)" % (bdg["psi"], mth)
        oslg.log(CN.FTL, m)
        return ipt

    for groups, key in _groups:
        for group in io.get(groups, []):
            if "id" not in group: continue

            ids = [props[key] for props in s.values()]

            if group["id"] not in ids:
                oslg.log(CN.ERR, "Unmatched %s '%s' (%s)" % (key, group["id"], mth))
            if "psi" in group and group["psi"] not in ipt["psi"].set:
                oslg.log(CN.ERR, "Unknown '%s' PSI set '%s' (%s)" % (group["id"], group["psi"], mth))

    for surface in io.get("surfaces", []):
        if "id" not in surface: continue

        id = surface["id"]

        if id not in s:
            oslg.log(CN.ERR, "Unmatched surface '%s' (%s)" % (id, mth))
        if "psi" in surface and surface["psi"] not in ipt["psi"].set:
            oslg.log(CN.ERR, "Unknown '%s' PSI set '%s' (%s)" % (id, surface["psi"], mth))

        for k in surface.get("khis", []):
            if "id" not in k: continue

            if k["id"] not in ipt["khi"].point:
                oslg.log(CN.ERR, "Unknown '%s' KHI '%s' (%s)" % (id, k["id"], mth))

            if "count" not in k: continue

            n = k["count"]

            if isinstance(n, bool) or not isinstance(n, int):
                oslg.mismatch("%s KHI count" % id, n, int, mth, CN.ERR)
            elif n < 0:
                oslg.negative("%s KHI count" % id, mth, CN.ERR)

    for edge in io.get("edges", []):
        if "type" not in edge: continue
        if "surfaces" not in edge: continue

        typ = str(edge["type"])

        if not ipt["psi"].safe(bdg["psi"], typ):
            oslg.log(CN.ERR, "Skipping invalid edge PSI '%s' (%s)" % (typ, mth))
            continue

        if "psi" in edge:
            if edge["psi"] not in ipt["psi"].set:
                oslg.log(CN.ERR, "Missing edge PSI '%s' (%s)" % (edge["psi"], mth))
                continue

            if not ipt["psi"].safe(edge["psi"], typ):
                oslg.log(CN.ERR, "Invalid %s: %s (%s)" % (edge["psi"], typ, mth))
                continue

        xyz = [k for k in ("v0x", "v0y", "v0z", "v1x", "v1y", "v1z") if k in edge]

        if xyz and len(xyz) < 6:
            oslg.log(CN.ERR, "Incomplete edge vertices %s (%s)" % (edge["surfaces"], mth))
            continue

        length = None

        if "length" in edge:
            try:
                length = float(edge["length"])
            except (ValueError, TypeError):
                oslg.mismatch("edge length", edge["length"], float, mth, CN.ERR)
                continue

        match = False

        for ee in e.values():
            if "io_type" in ee: continue
            if not all(id in ee["surfaces"] for id in edge["surfaces"]): continue

            if length is not None:
                if abs(ee["length"] - length) > CN.TOL: continue

            if xyz:
                pts = points([(edge["v0x"], edge["v0y"], edge["v0z"]),
                              (edge["v1x"], edge["v1y"], edge["v1z"])])
                if len(pts) < 2: continue

                e1 = dict(v0=pts[0], v1=pts[1])
                e2 = dict(v0=ee["v0"], v1=ee["v1"])
                if not matches(e1, e2): continue

            ee["io_type"] = typ
            if "psi" in edge: ee["io_set"] = edge["psi"]
            match = True

        if not match:
            oslg.log(CN.ERR, "Unmatched edge %s (%s)" % (edge["surfaces"], mth))

    ipt["io"] = io

    return ipt


def _max(lib=None, sets=[], type=""):
    """Returns (value, set ID) of the most conductive safe type across PSI sets
    (1st set wins ties), or None."""
    res = None

    for id in sets:
        safer = lib.safe(id, type)
        if not safer: continue

        val = lib.val[id][safer]
        if res is None or val > res[0]: res = (val, id)

    return res


def _toggle(psi=dict(), parapet=True, val=dict()) -> dict:
    """Returns PSI candidates with parapet types swapped for roof types (or
    vice versa)."""
    old = "roof" if parapet else "parapet"
    new = "parapet" if parapet else "roof"
    res = collections.OrderedDict()

    for t, v in psi.items():
        if base(t) == old:
            t = new + variant(t)
            v = val[t]

        res[t] = v

    return res


def resolve(edge=dict(), s=dict(), ipt=dict()) -> dict:
    """Resolves the PSI values of an edge's candidate types through layered
    overrides, in order: building set, stories, spacetypes, spaces, surfaces,
    then the edge itself. At each layer, the most conductive of all matching
    override sets wins (per type), and the winning set ID is retained as
    provenance. The edge itself is left untouched.

    Args:
        edge (dict):
            A classified TBD edge, with "psi" candidates (type: value).
        s (dict):
            TBD surfaces.
        ipt (dict):
            Processed inputs (see 'inputs').

    Returns:
        A dictionary:
            - "psi" (dict): resolved candidates (type: value)
            - "sets" (dict): provenance (type: PSI set ID)
            - "set" (str): edge-wide PSI set ID

    """
    lib = ipt["psi"]
    io  = ipt["io"] or dict()
    bdg = io.get("building", dict()).get("psi", "")
    psi = collections.OrderedDict(edge.get("psi", dict()))
    res = dict(psi=psi, sets=dict([(t, bdg) for t in psi]), set=bdg)
    ids = [id for id in edge.get("surfaces", dict()) if id in s]

    if "io_set" in edge:
        t  = edge["io_type"]
        id = edge["io_set"]
        res["psi" ] = collections.OrderedDict([(t, lib.val[id][lib.safe(id, t)])])
        res["sets"] = dict([(t, id)])
        res["set" ] = id
        return res

    # Wall-to-roof intersections: parapet vs roof, per group or surface.
    if "io_type" not in edge:
        for groups, key in _groups:
            for group in io.get(groups, []):
                if "id" not in group or "parapet" not in group: continue
                if not any(s[id][key] == group["id"] for id in ids): continue

                psi = _toggle(psi, bool(group["parapet"]), lib.val[bdg])

        for surface in io.get("surfaces", []):
            if "id" not in surface or "parapet" not in surface: continue
            if surface["id"] not in ids: continue

            psi = _toggle(psi, bool(surface["parapet"]), lib.val[bdg])

        res["psi" ] = psi
        res["sets"] = dict([(t, bdg) for t in psi])

    layers = []

    for groups, key in _groups:
        sets = []

        for group in io.get(groups, []):
            if "id" not in group or "psi" not in group: continue
            if group["psi"] not in lib.set: continue
            if not any(s[id][key] == group["id"] for id in ids): continue
            if group["psi"] not in sets: sets.append(group["psi"])

        layers.append(sets)

    sets = []

    for surface in io.get("surfaces", []):
        if "id" not in surface or "psi" not in surface: continue
        if surface["psi"] not in lib.set: continue
        if surface["id"] not in ids: continue
        if surface["psi"] not in sets: sets.append(surface["psi"])

    layers.append(sets)

    for sets in layers:
        for t in psi:
            best = _max(lib, sets, t)
            if best is None: continue

            psi[t]         = best[0]
            res["sets"][t] = best[1]

    return res
